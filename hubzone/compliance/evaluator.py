"""
Multi-factor compliance evaluation and risk scoring.

Four facts are evaluated independently from a business snapshot:

- residency: share of employees living in a zone
- office: principal office eligibility verdict
- ownership: qualifying ownership share and citizenship
- certification: approved and unexpired

The risk score starts at 100. Each failed fact costs a fixed penalty; a fact
that passes but sits close to its limit costs a smaller penalty scaled by how
close it is, so 36% residency scores worse than 60% residency.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from enum import Enum as PyEnum
from typing import Optional

from hubzone.business import Business, Certification, CertificationStatus
from hubzone.eligibility import EligibilityVerdict, ZoneVerdict
from .rules import MAX_SCORE, ComplianceRules


class RiskLevel(PyEnum):
    """Bucketed risk score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class VerificationStatus(PyEnum):
    """Overall certification standing of a verified business."""
    VALID = "valid"
    EXPIRED = "expired"
    NON_COMPLIANT = "non_compliant"
    PENDING = "pending"


@dataclass(frozen=True)
class ResidencyFact:
    is_compliant: bool
    percentage: float
    total_employees: int
    resident_employees: int
    threshold: float
    shortfall: int


@dataclass(frozen=True)
class OfficeFact:
    is_compliant: bool
    verdict: str
    zone_id: Optional[str]
    in_zone: bool
    is_in_grace_period: bool
    grace_period_days_remaining: Optional[int]


@dataclass(frozen=True)
class OwnershipFact:
    is_compliant: bool
    percentage: float
    citizen_owned: bool
    threshold: float


@dataclass(frozen=True)
class CertificationFact:
    is_compliant: bool
    status: Optional[str]
    expiration_date: Optional[date]
    days_until_expiration: Optional[int]
    requires_recertification: bool


@dataclass(frozen=True)
class ComplianceBreakdown:
    """The four compliance facts for one business on one date."""
    residency: ResidencyFact
    office: OfficeFact
    ownership: OwnershipFact
    certification: CertificationFact

    @property
    def all_compliant(self) -> bool:
        return (
            self.residency.is_compliant
            and self.office.is_compliant
            and self.ownership.is_compliant
            and self.certification.is_compliant
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        expiration = data["certification"]["expiration_date"]
        data["certification"]["expiration_date"] = expiration.isoformat() if expiration else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ComplianceBreakdown":
        cert = dict(data["certification"])
        if cert.get("expiration_date"):
            cert["expiration_date"] = date.fromisoformat(cert["expiration_date"])
        return cls(
            residency=ResidencyFact(**data["residency"]),
            office=OfficeFact(**data["office"]),
            ownership=OwnershipFact(**data["ownership"]),
            certification=CertificationFact(**cert),
        )


@dataclass(frozen=True)
class RiskFactor:
    category: str
    description: str
    points: int
    failed: bool = False


@dataclass(frozen=True)
class RiskAssessment:
    score: int
    level: RiskLevel
    factors: tuple[RiskFactor, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ComplianceResult:
    """Everything the evaluator derives from one snapshot."""
    breakdown: ComplianceBreakdown
    risk: RiskAssessment
    status: VerificationStatus
    recommendations: tuple[str, ...] = ()
    next_review_date: Optional[date] = None

    @property
    def is_compliant(self) -> bool:
        return self.breakdown.all_compliant


def risk_level_for(score: int, rules: ComplianceRules) -> RiskLevel:
    """Bucket a risk score. Higher scores never map to a worse level."""
    if score >= rules.low_risk_min_score:
        return RiskLevel.LOW
    if score >= rules.medium_risk_min_score:
        return RiskLevel.MEDIUM
    if score >= rules.high_risk_min_score:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def _scaled_penalty(max_points: int, margin: float, window: float) -> int:
    """Penalty shrinking linearly from max_points at margin 0 to nothing at the window edge."""
    if margin >= window:
        return 0
    return math.ceil(max_points * (1 - max(margin, 0) / window))


class ComplianceEvaluator:
    """Evaluates compliance facts and risk for business snapshots."""

    def __init__(self, rules: Optional[ComplianceRules] = None):
        self.rules = rules or ComplianceRules()

    def evaluate(
        self,
        business: Business,
        office_verdict: EligibilityVerdict,
        as_of: date,
    ) -> ComplianceResult:
        """
        Evaluate a snapshot.

        Args:
            business: Snapshot to evaluate.
            office_verdict: Eligibility verdict for the principal office.
            as_of: Evaluation date.

        Returns:
            Breakdown, risk assessment, overall verification status,
            recommendations and the next review date.
        """
        breakdown = ComplianceBreakdown(
            residency=self.residency(business),
            office=self.office(office_verdict),
            ownership=self.ownership(business),
            certification=self.certification(business.certification, as_of),
        )
        risk = self.assess_risk(breakdown)
        return ComplianceResult(
            breakdown=breakdown,
            risk=risk,
            status=self.determine_status(business.certification, breakdown, as_of),
            recommendations=self.recommend(risk),
            next_review_date=self.next_review_date(risk.level, as_of),
        )

    def residency(self, business: Business) -> ResidencyFact:
        total = business.workforce.total_employees
        residents = business.workforce.resident_employees
        threshold = self.rules.residency_threshold

        if total <= 0:
            return ResidencyFact(
                is_compliant=False,
                percentage=0.0,
                total_employees=0,
                resident_employees=0,
                threshold=threshold,
                shortfall=0,
            )

        percentage = residents / total * 100
        minimum_required = math.ceil(total * threshold / 100)
        return ResidencyFact(
            is_compliant=percentage >= threshold,
            percentage=round(percentage, 2),
            total_employees=total,
            resident_employees=residents,
            threshold=threshold,
            shortfall=max(0, minimum_required - residents),
        )

    def office(self, verdict: EligibilityVerdict) -> OfficeFact:
        return OfficeFact(
            is_compliant=verdict.is_eligible,
            verdict=verdict.state.value,
            zone_id=verdict.zone_id,
            in_zone=verdict.state == ZoneVerdict.IN_ZONE,
            is_in_grace_period=verdict.is_in_grace_period,
            grace_period_days_remaining=verdict.grace_period_days_remaining,
        )

    def ownership(self, business: Business) -> OwnershipFact:
        percentage = business.ownership.qualifying_percentage
        threshold = self.rules.ownership_threshold
        return OwnershipFact(
            is_compliant=percentage >= threshold and business.ownership.citizen_owned,
            percentage=percentage,
            citizen_owned=business.ownership.citizen_owned,
            threshold=threshold,
        )

    def certification(self, certification: Optional[Certification], as_of: date) -> CertificationFact:
        if certification is None:
            return CertificationFact(
                is_compliant=False,
                status=None,
                expiration_date=None,
                days_until_expiration=None,
                requires_recertification=False,
            )

        expiration = certification.expiration_date
        days = (expiration - as_of).days if expiration else None
        unexpired = expiration is None or expiration > as_of

        return CertificationFact(
            is_compliant=certification.status == CertificationStatus.APPROVED and unexpired,
            status=certification.status.value,
            expiration_date=expiration,
            days_until_expiration=days,
            requires_recertification=(
                days is not None and days < self.rules.recertification_warning_days
            ),
        )

    def assess_risk(self, breakdown: ComplianceBreakdown) -> RiskAssessment:
        """Apply the deduction model to a breakdown."""
        rules = self.rules
        factors = []

        residency = breakdown.residency
        if not residency.is_compliant:
            factors.append(RiskFactor(
                "residency",
                f"Zone residency at {residency.percentage}%, below required {residency.threshold}%",
                rules.penalty_residency,
                failed=True,
            ))
        else:
            points = _scaled_penalty(
                rules.borderline_residency_max,
                residency.percentage - residency.threshold,
                rules.residency_buffer,
            )
            if points:
                factors.append(RiskFactor(
                    "residency",
                    f"Zone residency at {residency.percentage}%, close to the {residency.threshold}% minimum",
                    points,
                ))

        office = breakdown.office
        if not office.is_compliant:
            factors.append(RiskFactor(
                "office",
                f"Principal office not in a designated zone ({office.verdict})",
                rules.penalty_office,
                failed=True,
            ))
        elif office.is_in_grace_period:
            points = _scaled_penalty(
                rules.borderline_office_grace_max,
                office.grace_period_days_remaining or 0,
                rules.grace_period_window_days,
            )
            if points:
                factors.append(RiskFactor(
                    "office",
                    f"Office in redesignated zone, grace period ends in "
                    f"{office.grace_period_days_remaining} days",
                    points,
                ))

        ownership = breakdown.ownership
        if not ownership.is_compliant:
            reason = (
                "not citizen owned" if not ownership.citizen_owned
                else f"qualifying ownership {ownership.percentage}% below {ownership.threshold}%"
            )
            factors.append(RiskFactor(
                "ownership", f"Ownership {reason}", rules.penalty_ownership, failed=True,
            ))
        else:
            points = _scaled_penalty(
                rules.borderline_ownership_max,
                ownership.percentage - ownership.threshold,
                rules.ownership_buffer,
            )
            if points:
                factors.append(RiskFactor(
                    "ownership",
                    f"Qualifying ownership at {ownership.percentage}%, close to the minimum",
                    points,
                ))

        certification = breakdown.certification
        if not certification.is_compliant:
            factors.append(RiskFactor(
                "certification",
                f"Certification not current (status: {certification.status or 'none'})",
                rules.penalty_certification,
                failed=True,
            ))
        elif certification.requires_recertification:
            points = _scaled_penalty(
                rules.borderline_certification_max,
                certification.days_until_expiration,
                rules.recertification_warning_days,
            )
            if points:
                factors.append(RiskFactor(
                    "certification",
                    f"Certification expires in {certification.days_until_expiration} days",
                    points,
                ))

        score = max(0, min(MAX_SCORE, MAX_SCORE - sum(f.points for f in factors)))
        return RiskAssessment(score=score, level=risk_level_for(score, rules), factors=tuple(factors))

    def recommend(self, risk: RiskAssessment) -> tuple[str, ...]:
        """Remediation steps for each risk factor, then any the risk level calls for."""
        rules = self.rules
        actions = []
        for factor in risk.factors:
            if factor.category == "residency":
                if factor.failed:
                    actions.append(
                        f"URGENT: Hire zone residents immediately to reach the "
                        f"{rules.residency_threshold:g}% residency threshold"
                    )
                    actions.append("Review current employee residency status for re-verification")
                else:
                    actions.append("Prioritize hiring zone residents to widen the margin above threshold")
            elif factor.category == "office":
                if factor.failed:
                    actions.append("URGENT: Relocate the principal office to a designated zone")
                else:
                    actions.append("Plan relocation of the principal office before the grace period ends")
                    actions.append("Research available commercial space in active designated zones")
            elif factor.category == "ownership":
                if factor.failed:
                    actions.append(
                        f"URGENT: Review and restructure ownership to meet the "
                        f"{rules.ownership_threshold:g}% qualifying threshold"
                    )
                else:
                    actions.append("Review planned ownership changes against the qualifying threshold")
            elif factor.category == "certification":
                if factor.failed:
                    actions.append("URGENT: Submit a recertification application immediately")
                else:
                    actions.append("Begin recertification and gather the required documentation")

        if risk.level == RiskLevel.CRITICAL:
            actions.append("Schedule an immediate compliance review with legal counsel")
        elif risk.level == RiskLevel.HIGH:
            actions.append("Schedule a compliance review within 30 days")

        return tuple(dict.fromkeys(actions))

    def next_review_date(self, level: RiskLevel, as_of: date) -> date:
        days = {
            RiskLevel.CRITICAL: self.rules.review_days_critical,
            RiskLevel.HIGH: self.rules.review_days_high,
            RiskLevel.MEDIUM: self.rules.review_days_medium,
            RiskLevel.LOW: self.rules.review_days_low,
        }[level]
        return as_of + timedelta(days=days)

    def determine_status(
        self,
        certification: Optional[Certification],
        breakdown: ComplianceBreakdown,
        as_of: date,
    ) -> VerificationStatus:
        """Overall standing, certification state first, then the location/workforce facts."""
        if certification is None or certification.status in (
            CertificationStatus.DENIED, CertificationStatus.WITHDRAWN,
        ):
            return VerificationStatus.NON_COMPLIANT

        if certification.status in (CertificationStatus.PENDING, CertificationStatus.UNDER_REVIEW):
            return VerificationStatus.PENDING

        if certification.status == CertificationStatus.EXPIRED:
            return VerificationStatus.EXPIRED

        if certification.expiration_date and certification.expiration_date <= as_of:
            return VerificationStatus.EXPIRED

        if not (
            breakdown.residency.is_compliant
            and breakdown.office.is_compliant
            and breakdown.ownership.is_compliant
        ):
            return VerificationStatus.NON_COMPLIANT

        return VerificationStatus.VALID
