"""Verification records and lookup results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from hubzone.compliance import ComplianceBreakdown, RiskFactor, RiskLevel, VerificationStatus
from hubzone.eligibility import EligibilityVerdict


def new_verification_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class Verification:
    """
    Immutable point-in-time verification of one business.

    Every call to VerificationService.verify produces a new record, even
    when nothing about the business changed.
    """
    uei: str
    business_name: str
    status: VerificationStatus
    verdict: EligibilityVerdict
    breakdown: ComplianceBreakdown
    risk_score: int
    risk_level: RiskLevel
    is_compliant: bool
    as_of: date
    verified_at: datetime
    triggered_by: Optional[str] = None
    method: str = "single"
    risk_factors: tuple[RiskFactor, ...] = ()
    recommendations: tuple[str, ...] = ()
    next_review_date: Optional[date] = None
    verification_id: str = field(default_factory=new_verification_id)

    def to_dict(self) -> dict:
        return {
            "verification_id": self.verification_id,
            "uei": self.uei,
            "business_name": self.business_name,
            "status": self.status.value,
            "verdict": self.verdict.to_dict(),
            "breakdown": self.breakdown.to_dict(),
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "risk_factors": [
                {"category": f.category, "description": f.description, "points": f.points,
                 "failed": f.failed}
                for f in self.risk_factors
            ],
            "recommendations": list(self.recommendations),
            "next_review_date": self.next_review_date.isoformat() if self.next_review_date else None,
            "is_compliant": self.is_compliant,
            "as_of": self.as_of.isoformat(),
            "verified_at": self.verified_at.isoformat(),
            "triggered_by": self.triggered_by,
            "method": self.method,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Verification":
        return cls(
            verification_id=data["verification_id"],
            uei=data["uei"],
            business_name=data["business_name"],
            status=VerificationStatus(data["status"]),
            verdict=EligibilityVerdict.from_dict(data["verdict"]),
            breakdown=ComplianceBreakdown.from_dict(data["breakdown"]),
            risk_score=data["risk_score"],
            risk_level=RiskLevel(data["risk_level"]),
            risk_factors=tuple(RiskFactor(**f) for f in data.get("risk_factors") or ()),
            recommendations=tuple(data.get("recommendations") or ()),
            next_review_date=(
                date.fromisoformat(data["next_review_date"]) if data.get("next_review_date") else None
            ),
            is_compliant=data["is_compliant"],
            as_of=date.fromisoformat(data["as_of"]),
            verified_at=datetime.fromisoformat(data["verified_at"]),
            triggered_by=data.get("triggered_by"),
            method=data.get("method", "single"),
        )

    def __repr__(self) -> str:
        return f"<Verification {self.uei} [{self.status.value}/{self.risk_level.value}] {self.verified_at}>"


@dataclass(frozen=True)
class NotFound:
    """Returned instead of raising when an identifier matches no business."""
    identifier: str
    message: str = "Business not found"

    def __bool__(self) -> bool:
        return False
