"""
Single-business verification.

verify() is the one synchronous entry point: it reads a fresh snapshot,
resolves the principal office against the published zone index, evaluates
compliance and appends a new Verification to the store. Nothing is cached
between calls.
"""

import logging
from datetime import date, datetime
from typing import Optional, Union

from hubzone.business import Business, is_valid_uei, normalize_uei
from hubzone.compliance import ComplianceEvaluator, ComplianceRules
from hubzone.eligibility import EligibilityResolver
from hubzone.errors import JobFault, ValidationError
from hubzone.geo import Coordinate, ZoneIndex, ZoneIndexHolder
from .models import NotFound, Verification
from .report import VerificationReport, build_report
from .sources import BusinessSource, CoordinateResolver
from .store import InMemoryVerificationStore, VerificationStore

logger = logging.getLogger(__name__)


class VerificationService:
    """Verifies businesses by UEI and records every result."""

    def __init__(
        self,
        source: BusinessSource,
        holder: ZoneIndexHolder,
        evaluator: Optional[ComplianceEvaluator] = None,
        store: Optional[VerificationStore] = None,
        geocoder: Optional[CoordinateResolver] = None,
    ):
        self.source = source
        self.holder = holder
        self.resolver = EligibilityResolver(holder)
        self.evaluator = evaluator or ComplianceEvaluator(ComplianceRules.from_config())
        self.store = store if store is not None else InMemoryVerificationStore()
        self.geocoder = geocoder

    def verify(
        self,
        uei: str,
        as_of: Optional[date] = None,
        triggered_by: Optional[str] = None,
        method: str = "single",
        index: Optional[ZoneIndex] = None,
    ) -> Union[Verification, NotFound]:
        """
        Verify one business.

        Args:
            uei: Business identifier, any case.
            as_of: Evaluation date (default today).
            triggered_by: User name or bulk job id recorded on the result.
            method: "single" or "bulk".
            index: Zone index snapshot; defaults to the currently published one.

        Returns:
            The stored Verification, or NotFound for an unknown identifier.

        Raises:
            ValidationError: malformed identifier.
            DependencyUnavailable: business source or geocoder unreachable.
            JobFault: the verification could not be stored.
        """
        identifier = self._normalize(uei)
        business = self.source.get(identifier)
        if business is None:
            logger.info("No business registered under %s", identifier)
            return NotFound(identifier)

        return self._verify_business(business, as_of, triggered_by, method, index)

    def report(
        self,
        uei: str,
        agency_name: str,
        verifier_name: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> Union[VerificationReport, NotFound]:
        """Verify a business and build the certificate report from that fresh result."""
        identifier = self._normalize(uei)
        business = self.source.get(identifier)
        if business is None:
            return NotFound(identifier)

        verification = self._verify_business(
            business, as_of, triggered_by=verifier_name, method="single", index=None,
        )
        return build_report(verification, business, agency_name, verifier_name)

    def _normalize(self, uei: str) -> str:
        identifier = normalize_uei(uei)
        if not is_valid_uei(identifier):
            raise ValidationError(
                "Invalid UEI", [f"{uei!r} is not 12 alphanumeric characters"]
            )
        return identifier

    def office_coordinate(self, business: Business) -> Optional[Coordinate]:
        """Pre-resolved coordinate from the snapshot, else the geocoder's answer."""
        if business.office_coordinate is not None:
            return business.office_coordinate
        if business.principal_office is None or self.geocoder is None:
            return None
        return self.geocoder.resolve(business.principal_office)

    def _verify_business(
        self,
        business: Business,
        as_of: Optional[date],
        triggered_by: Optional[str],
        method: str,
        index: Optional[ZoneIndex],
    ) -> Verification:
        as_of = as_of or date.today()

        coordinate = self.office_coordinate(business)
        if coordinate is None:
            logger.warning("%s has no resolvable office location", business.uei)

        verdict = self.resolver.resolve(coordinate, as_of, index=index)
        result = self.evaluator.evaluate(business, verdict, as_of)

        verification = Verification(
            uei=business.uei,
            business_name=business.legal_name,
            status=result.status,
            verdict=verdict,
            breakdown=result.breakdown,
            risk_score=result.risk.score,
            risk_level=result.risk.level,
            risk_factors=result.risk.factors,
            recommendations=result.recommendations,
            next_review_date=result.next_review_date,
            is_compliant=result.is_compliant,
            as_of=as_of,
            verified_at=datetime.now(),
            triggered_by=triggered_by,
            method=method,
        )

        try:
            self.store.append(verification)
        except JobFault:
            raise
        except Exception as e:
            raise JobFault(f"Could not store verification for {business.uei}: {e}") from e

        logger.debug(
            "Verified %s: %s, risk %d (%s)",
            business.uei, verification.status.value,
            verification.risk_score, verification.risk_level.value,
        )
        return verification
