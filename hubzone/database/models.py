"""SQLAlchemy models for the HUBZone verification database."""

from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Numeric,
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Enum,
    JSON,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from hubzone.business import CertificationStatus
from hubzone.compliance import RiskLevel, VerificationStatus


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class BusinessRecord(Base):
    """Business snapshot as mirrored from the business-management subsystem."""
    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(primary_key=True)
    uei: Mapped[str] = mapped_column(String(12), unique=True, index=True)
    legal_name: Mapped[str] = mapped_column(String(500), index=True)
    dba_name: Mapped[Optional[str]] = mapped_column(String(500))
    cage_code: Mapped[Optional[str]] = mapped_column(String(10))

    street1: Mapped[Optional[str]] = mapped_column(String(500))
    street2: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(2))
    zip_code: Mapped[Optional[str]] = mapped_column(String(20))
    latitude: Mapped[Optional[float]] = mapped_column(
        Float, comment="Pre-resolved office coordinate, skips geocoding"
    )
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    qualifying_ownership_pct: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)
    citizen_owned: Mapped[bool] = mapped_column(Boolean, default=False)
    total_employees: Mapped[int] = mapped_column(Integer, default=0)
    resident_employees: Mapped[int] = mapped_column(
        Integer, default=0, comment="Employees living in a designated zone"
    )

    certification_status: Mapped[Optional[CertificationStatus]] = mapped_column(
        Enum(CertificationStatus), index=True
    )
    certification_number: Mapped[Optional[str]] = mapped_column(String(50))
    certification_date: Mapped[Optional[date]] = mapped_column(Date)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_businesses_city_state", "city", "state"),
    )

    def __repr__(self) -> str:
        return f"<BusinessRecord {self.uei}: {self.legal_name}>"


class VerificationRecord(Base):
    """One point-in-time verification. Rows are only ever inserted."""
    __tablename__ = "verification_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    verification_id: Mapped[str] = mapped_column(String(32), unique=True)
    uei: Mapped[str] = mapped_column(String(12), index=True)
    business_name: Mapped[str] = mapped_column(String(500))
    status: Mapped[VerificationStatus] = mapped_column(
        Enum(VerificationStatus), index=True
    )
    risk_score: Mapped[int] = mapped_column(Integer)
    risk_level: Mapped[RiskLevel] = mapped_column(Enum(RiskLevel), index=True)
    is_compliant: Mapped[bool] = mapped_column(Boolean)
    as_of: Mapped[date] = mapped_column(Date)
    verified_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    triggered_by: Mapped[Optional[str]] = mapped_column(
        String(100), comment="User name or bulk job id"
    )
    method: Mapped[str] = mapped_column(String(20), default="single")
    verdict: Mapped[dict] = mapped_column(JSON, comment="Office eligibility verdict")
    breakdown: Mapped[dict] = mapped_column(JSON, comment="Four compliance facts")
    risk_factors: Mapped[Optional[list]] = mapped_column(JSON)
    recommendations: Mapped[Optional[list]] = mapped_column(JSON)
    next_review_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_verification_history_uei_verified", "uei", "verified_at"),
    )

    def __repr__(self) -> str:
        return f"<VerificationRecord {self.uei} [{self.status.value}] {self.verified_at}>"


class BulkJobRecord(Base):
    """Finished bulk verification job with its per-item results."""
    __tablename__ = "bulk_verification_jobs"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    status: Mapped[str] = mapped_column(
        String(20), index=True, comment="completed, failed, cancelled"
    )
    requested_by: Mapped[Optional[str]] = mapped_column(String(100))
    total_requested: Mapped[int] = mapped_column(Integer)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    summary: Mapped[dict] = mapped_column(JSON)
    warnings: Mapped[Optional[list]] = mapped_column(JSON)
    results: Mapped[list] = mapped_column(JSON)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<BulkJobRecord {self.job_id} [{self.status}] {self.processed}/{self.total_requested}>"
