"""
Compliance thresholds and risk weights.

Defaults follow the program rules used by the certification office: 35%
employee residency, 51% qualifying ownership, a 90-day recertification
warning and a three-year grace period for redesignated areas. Any value can be
overridden from the ``compliance:`` section of config.yaml, e.g.::

    compliance:
      residency_threshold: 35.0
      penalty_office: 30
"""

from dataclasses import dataclass, fields, replace
from typing import Optional

# Fact thresholds
RESIDENCY_THRESHOLD_PCT = 35.0
OWNERSHIP_THRESHOLD_PCT = 51.0
RECERTIFICATION_WARNING_DAYS = 90
GRACE_PERIOD_WINDOW_DAYS = 1095

# Fixed deductions for a failed fact. Office and ownership are structural and
# slow to remediate; residency and certification drift can be fixed quickly.
PENALTY_RESIDENCY = 20
PENALTY_OFFICE = 30
PENALTY_OWNERSHIP = 30
PENALTY_CERTIFICATION = 20

# Largest extra deduction for a passing fact that sits close to its limit.
# Their sum must leave a fully compliant business at or above LOW_RISK_MIN_SCORE.
BORDERLINE_RESIDENCY_MAX = 8
BORDERLINE_OWNERSHIP_MAX = 4
BORDERLINE_OFFICE_GRACE_MAX = 5
BORDERLINE_CERTIFICATION_MAX = 3

# Percentage points above threshold within which a passing fact is borderline
RESIDENCY_BUFFER_PCT = 10.0
OWNERSHIP_BUFFER_PCT = 10.0

# Days until the next compliance review, by risk level
REVIEW_DAYS_CRITICAL = 7
REVIEW_DAYS_HIGH = 14
REVIEW_DAYS_MEDIUM = 30
REVIEW_DAYS_LOW = 90

# Risk level floors (score is 0-100, higher is safer)
LOW_RISK_MIN_SCORE = 80
MEDIUM_RISK_MIN_SCORE = 60
HIGH_RISK_MIN_SCORE = 40

MAX_SCORE = 100


@dataclass(frozen=True)
class ComplianceRules:
    """Threshold and weight set used by the evaluator."""
    residency_threshold: float = RESIDENCY_THRESHOLD_PCT
    ownership_threshold: float = OWNERSHIP_THRESHOLD_PCT
    recertification_warning_days: int = RECERTIFICATION_WARNING_DAYS
    grace_period_window_days: int = GRACE_PERIOD_WINDOW_DAYS

    penalty_residency: int = PENALTY_RESIDENCY
    penalty_office: int = PENALTY_OFFICE
    penalty_ownership: int = PENALTY_OWNERSHIP
    penalty_certification: int = PENALTY_CERTIFICATION

    borderline_residency_max: int = BORDERLINE_RESIDENCY_MAX
    borderline_ownership_max: int = BORDERLINE_OWNERSHIP_MAX
    borderline_office_grace_max: int = BORDERLINE_OFFICE_GRACE_MAX
    borderline_certification_max: int = BORDERLINE_CERTIFICATION_MAX

    residency_buffer: float = RESIDENCY_BUFFER_PCT
    ownership_buffer: float = OWNERSHIP_BUFFER_PCT

    low_risk_min_score: int = LOW_RISK_MIN_SCORE
    medium_risk_min_score: int = MEDIUM_RISK_MIN_SCORE
    high_risk_min_score: int = HIGH_RISK_MIN_SCORE

    review_days_critical: int = REVIEW_DAYS_CRITICAL
    review_days_high: int = REVIEW_DAYS_HIGH
    review_days_medium: int = REVIEW_DAYS_MEDIUM
    review_days_low: int = REVIEW_DAYS_LOW

    def __post_init__(self):
        if not (MAX_SCORE >= self.low_risk_min_score > self.medium_risk_min_score
                > self.high_risk_min_score > 0):
            raise ValueError("Risk level floors must be strictly decreasing within 0-100")

        borderline_total = (
            self.borderline_residency_max
            + self.borderline_ownership_max
            + self.borderline_office_grace_max
            + self.borderline_certification_max
        )
        if borderline_total > MAX_SCORE - self.low_risk_min_score:
            raise ValueError(
                f"Borderline penalties total {borderline_total}, more than the "
                f"{MAX_SCORE - self.low_risk_min_score} points a compliant business may lose"
            )

        if self.residency_buffer <= 0 or self.ownership_buffer <= 0:
            raise ValueError("Borderline buffers must be positive")
        if self.recertification_warning_days <= 0 or self.grace_period_window_days <= 0:
            raise ValueError("Warning windows must be positive")
        if not (0 < self.review_days_critical <= self.review_days_high
                <= self.review_days_medium <= self.review_days_low):
            raise ValueError("Review intervals must be positive and grow as risk falls")

    @classmethod
    def from_config(cls, overrides: Optional[dict] = None) -> "ComplianceRules":
        """Build rules from config overrides, ignoring unknown keys."""
        if overrides is None:
            from hubzone.config import config
            overrides = config.compliance_overrides

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in (overrides or {}).items() if k in known}
        return replace(cls(), **values) if values else cls()
