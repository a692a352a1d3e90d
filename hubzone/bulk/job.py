"""
Bulk job state machine and per-item results.

    pending -> processing -> completed | failed | cancelled
    pending -> cancelled

Every mutation happens under the job's lock. Terminal jobs accept no further
results, and a result for an identifier that already has one is ignored, so
the processed counter only ever counts distinct identifiers.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Iterable, Optional
from uuid import uuid4

from hubzone.compliance import RiskLevel, VerificationStatus
from hubzone.errors import InvalidTransition, JobFault


class JobStatus(PyEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.CANCELLED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


class ItemStatus(PyEnum):
    """Outcome of one identifier in a bulk job."""
    VALID = "valid"
    EXPIRED = "expired"
    NON_COMPLIANT = "non_compliant"
    PENDING = "pending"
    NOT_FOUND = "not_found"
    ERROR = "error"
    # Export only: the job stopped before reaching the identifier
    NOT_PROCESSED = "not_processed"


@dataclass(frozen=True)
class BulkItemResult:
    identifier: str
    status: ItemStatus
    business_name: Optional[str] = None
    is_compliant: Optional[bool] = None
    risk_score: Optional[int] = None
    risk_level: Optional[RiskLevel] = None
    verification_id: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False

    @classmethod
    def from_verification(cls, verification) -> "BulkItemResult":
        return cls(
            identifier=verification.uei,
            status=ItemStatus(verification.status.value),
            business_name=verification.business_name,
            is_compliant=verification.is_compliant,
            risk_score=verification.risk_score,
            risk_level=verification.risk_level,
            verification_id=verification.verification_id,
        )

    @classmethod
    def not_found(cls, identifier: str, message: str = "Business not found") -> "BulkItemResult":
        return cls(identifier=identifier, status=ItemStatus.NOT_FOUND, error_message=message)

    @classmethod
    def error(cls, identifier: str, message: str, retryable: bool = False) -> "BulkItemResult":
        return cls(
            identifier=identifier,
            status=ItemStatus.ERROR,
            error_message=message,
            retryable=retryable,
        )

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "status": self.status.value,
            "business_name": self.business_name,
            "is_compliant": self.is_compliant,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value if self.risk_level else None,
            "verification_id": self.verification_id,
            "error_message": self.error_message,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class BulkSummary:
    compliant: int = 0
    non_compliant: int = 0
    expired: int = 0
    not_found: int = 0
    errors: int = 0

    @classmethod
    def fold(cls, results: Iterable[BulkItemResult]) -> "BulkSummary":
        """Count outcomes straight from the stored item results."""
        counts = dict.fromkeys(("compliant", "non_compliant", "expired", "not_found", "errors"), 0)
        for item in results:
            if item.status == ItemStatus.NOT_FOUND:
                counts["not_found"] += 1
            elif item.status == ItemStatus.ERROR:
                counts["errors"] += 1
            elif item.status == ItemStatus.EXPIRED:
                counts["expired"] += 1
            elif item.is_compliant:
                counts["compliant"] += 1
            else:
                counts["non_compliant"] += 1
        return cls(**counts)

    @property
    def total(self) -> int:
        return self.compliant + self.non_compliant + self.expired + self.not_found + self.errors

    def to_dict(self) -> dict:
        return {
            "compliant": self.compliant,
            "non_compliant": self.non_compliant,
            "expired": self.expired,
            "not_found": self.not_found,
            "errors": self.errors,
        }


@dataclass(frozen=True)
class JobProgress:
    job_id: str
    status: JobStatus
    total: int
    processed: int

    @property
    def percent(self) -> float:
        return round(self.processed / self.total * 100, 1) if self.total else 0.0


@dataclass(frozen=True)
class BulkVerificationResult:
    """Snapshot of a bulk job handed to export and persistence."""
    job_id: str
    status: JobStatus
    identifiers: tuple[str, ...]
    processed: int
    results: tuple[BulkItemResult, ...]
    summary: BulkSummary
    warnings: tuple[str, ...]
    created_at: datetime
    requested_by: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_requested(self) -> int:
        return len(self.identifiers)

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "requested_by": self.requested_by,
            "total_requested": self.total_requested,
            "processed": self.processed,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
            "warnings": list(self.warnings),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class BulkJob:
    """A validated batch of identifiers and everything that happened to it."""

    def __init__(self, identifiers: Iterable[str], requested_by: Optional[str] = None,
                 job_id: Optional[str] = None):
        self.job_id = job_id or uuid4().hex
        self.identifiers = tuple(identifiers)
        self.requested_by = requested_by
        self.created_at = datetime.now()
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.error_message: Optional[str] = None

        self._status = JobStatus.PENDING
        self._results: dict[str, BulkItemResult] = {}
        self._warnings: list[str] = []
        self._requested = frozenset(self.identifiers)
        self._cancel = threading.Event()
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"<BulkJob {self.job_id} [{self.status.value}] {self.processed}/{len(self.identifiers)}>"

    @property
    def status(self) -> JobStatus:
        with self._lock:
            return self._status

    @property
    def processed(self) -> int:
        with self._lock:
            return len(self._results)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    @property
    def warnings(self) -> list[str]:
        with self._lock:
            return list(self._warnings)

    def transition(self, target: JobStatus, error_message: Optional[str] = None) -> None:
        """Atomically move to target, stamping start/completion times."""
        with self._lock:
            if target not in TRANSITIONS[self._status]:
                raise InvalidTransition(self.job_id, self._status.value, target.value)
            self._status = target
            if target == JobStatus.PROCESSING:
                self.started_at = datetime.now()
            if target in TERMINAL:
                self.completed_at = datetime.now()
            if error_message:
                self.error_message = error_message

    def request_cancel(self) -> JobStatus:
        """
        Ask the job to stop.

        A pending job is cancelled at once. A processing job stops dispatching
        and is cancelled once in-flight items finish.

        Raises:
            InvalidTransition: the job already finished.
        """
        with self._lock:
            if self._status == JobStatus.PENDING:
                self.transition(JobStatus.CANCELLED)
            elif self._status == JobStatus.PROCESSING:
                self._cancel.set()
            else:
                raise InvalidTransition(self.job_id, self._status.value, JobStatus.CANCELLED.value)
            return self._status

    def record_result(self, result: BulkItemResult) -> bool:
        """
        Store one item's outcome and advance the processed counter.

        Returns False if the identifier already has a result.

        Raises:
            JobFault: the job is not processing, or the identifier was never requested.
        """
        with self._lock:
            if self._status != JobStatus.PROCESSING:
                raise JobFault(
                    f"Job {self.job_id} is {self._status.value}; result for "
                    f"{result.identifier} rejected"
                )
            if result.identifier not in self._requested:
                raise JobFault(f"Job {self.job_id} never requested {result.identifier}")
            if result.identifier in self._results:
                return False
            self._results[result.identifier] = result
            return True

    def add_warning(self, message: str) -> None:
        with self._lock:
            if message not in self._warnings:
                self._warnings.append(message)

    def result_for(self, identifier: str) -> Optional[BulkItemResult]:
        with self._lock:
            return self._results.get(identifier)

    def summary(self) -> BulkSummary:
        with self._lock:
            return BulkSummary.fold(self._results.values())

    def progress(self) -> JobProgress:
        with self._lock:
            return JobProgress(self.job_id, self._status, len(self.identifiers), len(self._results))

    def to_result(self, status: Optional[JobStatus] = None,
                  completed_at: Optional[datetime] = None,
                  error_message: Optional[str] = None) -> BulkVerificationResult:
        """
        Snapshot the job. Results follow the requested order.

        status, completed_at and error_message override the current values, for persisting
        a job just before its final transition.
        """
        with self._lock:
            results = tuple(self._results[i] for i in self.identifiers if i in self._results)
            return BulkVerificationResult(
                job_id=self.job_id,
                status=status or self._status,
                identifiers=self.identifiers,
                processed=len(results),
                results=results,
                summary=BulkSummary.fold(results),
                warnings=tuple(self._warnings),
                created_at=self.created_at,
                requested_by=self.requested_by,
                error_message=error_message or self.error_message,
                started_at=self.started_at,
                completed_at=completed_at or self.completed_at,
            )
