"""Zone eligibility resolution."""

from .resolver import EligibilityResolver, EligibilityVerdict, ZoneVerdict, zone_state

__all__ = ["EligibilityResolver", "EligibilityVerdict", "ZoneVerdict", "zone_state"]
