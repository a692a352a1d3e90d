"""Verification report values consumed by certificate/PDF rendering."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from uuid import uuid4

from hubzone.business import Business
from hubzone.compliance import ComplianceBreakdown, RiskLevel, VerificationStatus
from hubzone.config import config
from hubzone.normalization import format_address
from .models import Verification


@dataclass(frozen=True)
class VerificationReport:
    """Everything printed on a verification certificate."""
    report_id: str
    generated_at: datetime
    valid_until: datetime
    agency_name: str
    verifier_name: Optional[str]
    business_name: str
    dba_name: Optional[str]
    uei: str
    cage_code: Optional[str]
    principal_office_address: str
    certification_status: VerificationStatus
    certification_number: Optional[str]
    certification_date: Optional[date]
    expiration_date: Optional[date]
    compliance: ComplianceBreakdown
    compliance_score: int
    risk_level: RiskLevel
    verification_id: str
    verification_url: str

    def to_dict(self) -> dict:
        return {
            "report_id": self.report_id,
            "generated_at": self.generated_at.isoformat(),
            "valid_until": self.valid_until.isoformat(),
            "agency_name": self.agency_name,
            "verifier_name": self.verifier_name,
            "business_name": self.business_name,
            "dba_name": self.dba_name,
            "uei": self.uei,
            "cage_code": self.cage_code,
            "principal_office_address": self.principal_office_address,
            "certification_status": self.certification_status.value,
            "certification_number": self.certification_number,
            "certification_date": self.certification_date.isoformat() if self.certification_date else None,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "compliance": self.compliance.to_dict(),
            "compliance_score": self.compliance_score,
            "risk_level": self.risk_level.value,
            "verification_id": self.verification_id,
            "verification_url": self.verification_url,
        }


def build_report(
    verification: Verification,
    business: Business,
    agency_name: str,
    verifier_name: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> VerificationReport:
    """
    Build a report from a fresh verification and the snapshot it was computed from.

    The report stays valid for ``report.valid_days`` (default 30) and links
    to ``{report.base_url}/verify/{report_id}``.
    """
    report_id = uuid4().hex
    generated_at = generated_at or datetime.now()
    certification = business.certification

    return VerificationReport(
        report_id=report_id,
        generated_at=generated_at,
        valid_until=generated_at + timedelta(days=config.report_valid_days),
        agency_name=agency_name,
        verifier_name=verifier_name,
        business_name=business.legal_name,
        dba_name=business.dba_name,
        uei=business.uei,
        cage_code=business.cage_code,
        principal_office_address=format_address(business.principal_office) or "Address not available",
        certification_status=verification.status,
        certification_number=certification.certification_number if certification else None,
        certification_date=certification.certification_date if certification else None,
        expiration_date=certification.expiration_date if certification else None,
        compliance=verification.breakdown,
        compliance_score=verification.risk_score,
        risk_level=verification.risk_level,
        verification_id=verification.verification_id,
        verification_url=f"{config.report_base_url.rstrip('/')}/verify/{report_id}",
    )
