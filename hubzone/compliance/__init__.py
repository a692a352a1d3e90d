"""Compliance fact evaluation and risk scoring."""

from .evaluator import (
    ComplianceBreakdown,
    ComplianceEvaluator,
    ComplianceResult,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    VerificationStatus,
    risk_level_for,
)
from .rules import ComplianceRules

__all__ = [
    "ComplianceBreakdown",
    "ComplianceEvaluator",
    "ComplianceResult",
    "ComplianceRules",
    "RiskAssessment",
    "RiskFactor",
    "RiskLevel",
    "VerificationStatus",
    "risk_level_for",
]
