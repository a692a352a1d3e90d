"""
Append-only verification history.

Records are keyed by UEI and verification time and are never updated or
deleted. Both implementations return query results newest first.
"""

import threading
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Protocol, TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from hubzone.compliance import RiskLevel, VerificationStatus
from hubzone.database import BulkJobRecord, VerificationRecord, get_session
from hubzone.errors import JobFault
from .models import Verification

if TYPE_CHECKING:
    from hubzone.bulk.job import BulkVerificationResult


@dataclass
class VerificationFilters:
    """History query filters. Dates are inclusive and compare verified_at."""
    uei: Optional[str] = None
    status: Optional[VerificationStatus] = None
    risk_level: Optional[RiskLevel] = None
    start: Optional[date] = None
    end: Optional[date] = None
    limit: int = 100
    offset: int = 0

    def matches(self, verification: Verification) -> bool:
        if self.uei and verification.uei != self.uei.upper():
            return False
        if self.status and verification.status != self.status:
            return False
        if self.risk_level and verification.risk_level != self.risk_level:
            return False
        verified_on = verification.verified_at.date()
        if self.start and verified_on < self.start:
            return False
        if self.end and verified_on > self.end:
            return False
        return True


class VerificationStore(Protocol):
    def append(self, verification: Verification) -> None:
        ...

    def query(self, filters: Optional[VerificationFilters] = None) -> list[Verification]:
        ...

    def latest(self, uei: str) -> Optional[Verification]:
        ...

    def save_job(self, result: "BulkVerificationResult") -> None:
        ...


class InMemoryVerificationStore:
    """List-backed store for tests and one-off CLI runs."""

    def __init__(self):
        self._records: list[Verification] = []
        self.jobs: dict[str, "BulkVerificationResult"] = {}
        self._lock = threading.Lock()

    def append(self, verification: Verification) -> None:
        with self._lock:
            self._records.append(verification)

    def query(self, filters: Optional[VerificationFilters] = None) -> list[Verification]:
        filters = filters or VerificationFilters()
        with self._lock:
            # Later appends win timestamp ties
            ordered = list(reversed(self._records))
        ordered.sort(key=lambda v: v.verified_at, reverse=True)
        matched = [v for v in ordered if filters.matches(v)]
        return matched[filters.offset:filters.offset + filters.limit]

    def latest(self, uei: str) -> Optional[Verification]:
        found = self.query(VerificationFilters(uei=uei, limit=1))
        return found[0] if found else None

    def save_job(self, result: "BulkVerificationResult") -> None:
        with self._lock:
            self.jobs[result.job_id] = result

    def __len__(self) -> int:
        return len(self._records)


def _record_from_verification(v: Verification) -> VerificationRecord:
    data = v.to_dict()
    return VerificationRecord(
        verification_id=v.verification_id,
        uei=v.uei,
        business_name=v.business_name,
        status=v.status,
        risk_score=v.risk_score,
        risk_level=v.risk_level,
        is_compliant=v.is_compliant,
        as_of=v.as_of,
        verified_at=v.verified_at,
        triggered_by=v.triggered_by,
        method=v.method,
        verdict=data["verdict"],
        breakdown=data["breakdown"],
        risk_factors=data["risk_factors"],
        recommendations=data["recommendations"],
        next_review_date=v.next_review_date,
    )


def _verification_from_record(record: VerificationRecord) -> Verification:
    return Verification.from_dict({
        "verification_id": record.verification_id,
        "uei": record.uei,
        "business_name": record.business_name,
        "status": record.status.value,
        "verdict": record.verdict,
        "breakdown": record.breakdown,
        "risk_score": record.risk_score,
        "risk_level": record.risk_level.value,
        "risk_factors": record.risk_factors,
        "recommendations": record.recommendations,
        "next_review_date": record.next_review_date.isoformat() if record.next_review_date else None,
        "is_compliant": record.is_compliant,
        "as_of": record.as_of.isoformat(),
        "verified_at": record.verified_at.isoformat(),
        "triggered_by": record.triggered_by,
        "method": record.method,
    })


class SqlVerificationStore:
    """Store backed by the verification_history and bulk_verification_jobs tables."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def append(self, verification: Verification) -> None:
        try:
            with get_session(self.session_factory) as session:
                session.add(_record_from_verification(verification))
        except SQLAlchemyError as e:
            raise JobFault(f"Could not store verification for {verification.uei}: {e}") from e

    def query(self, filters: Optional[VerificationFilters] = None) -> list[Verification]:
        filters = filters or VerificationFilters()
        stmt = select(VerificationRecord)

        if filters.uei:
            stmt = stmt.where(VerificationRecord.uei == filters.uei.upper())
        if filters.status:
            stmt = stmt.where(VerificationRecord.status == filters.status)
        if filters.risk_level:
            stmt = stmt.where(VerificationRecord.risk_level == filters.risk_level)
        if filters.start:
            stmt = stmt.where(VerificationRecord.verified_at >= datetime.combine(filters.start, time.min))
        if filters.end:
            stmt = stmt.where(VerificationRecord.verified_at <= datetime.combine(filters.end, time.max))

        stmt = (
            stmt.order_by(VerificationRecord.verified_at.desc(), VerificationRecord.id.desc())
            .offset(filters.offset)
            .limit(filters.limit)
        )

        try:
            with get_session(self.session_factory) as session:
                return [_verification_from_record(r) for r in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise JobFault(f"Could not query verification history: {e}") from e

    def latest(self, uei: str) -> Optional[Verification]:
        found = self.query(VerificationFilters(uei=uei, limit=1))
        return found[0] if found else None

    def save_job(self, result: "BulkVerificationResult") -> None:
        data = result.to_dict()
        try:
            with get_session(self.session_factory) as session:
                session.add(BulkJobRecord(
                    job_id=result.job_id,
                    status=result.status.value,
                    requested_by=result.requested_by,
                    total_requested=result.total_requested,
                    processed=result.processed,
                    summary=data["summary"],
                    warnings=data["warnings"],
                    results=data["results"],
                    error_message=result.error_message,
                    created_at=result.created_at,
                    started_at=result.started_at,
                    completed_at=result.completed_at,
                ))
        except SQLAlchemyError as e:
            raise JobFault(f"Could not store bulk job {result.job_id}: {e}") from e
