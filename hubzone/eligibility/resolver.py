"""
Zone eligibility resolution.

A location is eligible while it sits in an active zone, or in a redesignated
zone whose designation lapsed but whose grace period has not ended. A lapsed
zone outside its grace window is reported as EXPIRED rather than NOT_IN_ZONE
so callers can tell "was qualified, window closed" from "never in a zone".
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum as PyEnum
from typing import Optional

from hubzone.geo import Coordinate, DesignationType, Zone, ZoneIndex, ZoneIndexHolder, ZoneStatus


class ZoneVerdict(PyEnum):
    """Outcome of resolving a location against the zone index."""
    IN_ZONE = "in_zone"
    GRACE_PERIOD = "grace_period"
    EXPIRED = "expired"
    NOT_IN_ZONE = "not_in_zone"


@dataclass(frozen=True)
class EligibilityVerdict:
    """Zone designation verdict for one location on one date."""
    state: ZoneVerdict
    as_of: date
    zone_id: Optional[str] = None
    zone_name: Optional[str] = None
    designation_type: Optional[DesignationType] = None
    grace_period_end: Optional[date] = None
    grace_period_days_remaining: Optional[int] = None

    @property
    def is_eligible(self) -> bool:
        return self.state in (ZoneVerdict.IN_ZONE, ZoneVerdict.GRACE_PERIOD)

    @property
    def is_in_grace_period(self) -> bool:
        return self.state == ZoneVerdict.GRACE_PERIOD

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "as_of": self.as_of.isoformat(),
            "is_eligible": self.is_eligible,
            "is_in_grace_period": self.is_in_grace_period,
            "zone_id": self.zone_id,
            "zone_name": self.zone_name,
            "designation_type": self.designation_type.value if self.designation_type else None,
            "grace_period_end": self.grace_period_end.isoformat() if self.grace_period_end else None,
            "grace_period_days_remaining": self.grace_period_days_remaining,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EligibilityVerdict":
        return cls(
            state=ZoneVerdict(data["state"]),
            as_of=date.fromisoformat(data["as_of"]),
            zone_id=data.get("zone_id"),
            zone_name=data.get("zone_name"),
            designation_type=(
                DesignationType(data["designation_type"]) if data.get("designation_type") else None
            ),
            grace_period_end=(
                date.fromisoformat(data["grace_period_end"]) if data.get("grace_period_end") else None
            ),
            grace_period_days_remaining=data.get("grace_period_days_remaining"),
        )


def zone_state(zone: Zone, as_of: date) -> Optional[ZoneVerdict]:
    """
    Classify one zone's designation on a date.

    Returns None when the designation has not taken effect yet.
    """
    if as_of < zone.effective_date:
        return None

    if zone.expiration_date is None:
        lapsed = zone.status == ZoneStatus.EXPIRED
    else:
        lapsed = as_of > zone.expiration_date
    if not lapsed:
        return ZoneVerdict.IN_ZONE

    if zone.redesignated and zone.grace_period_end is not None and as_of <= zone.grace_period_end:
        return ZoneVerdict.GRACE_PERIOD
    return ZoneVerdict.EXPIRED


class EligibilityResolver:
    """Resolves zone eligibility against the currently published index."""

    def __init__(self, holder: ZoneIndexHolder):
        self.holder = holder

    def resolve(
        self,
        coordinate: Optional[Coordinate],
        as_of: Optional[date] = None,
        index: Optional[ZoneIndex] = None,
    ) -> EligibilityVerdict:
        """
        Resolve eligibility for a coordinate.

        Args:
            coordinate: Location to check; None yields NOT_IN_ZONE.
            as_of: Evaluation date (default today).
            index: Explicit index snapshot; defaults to the holder's current one.

        Returns:
            Verdict for the most specific active zone, else the most specific
            zone in its grace period, else the most specific lapsed zone.
        """
        as_of = as_of or date.today()
        if coordinate is None:
            return EligibilityVerdict(state=ZoneVerdict.NOT_IN_ZONE, as_of=as_of)

        index = index if index is not None else self.holder.current()
        zones = index.resolve(coordinate)

        classified = []
        for zone in zones:
            state = zone_state(zone, as_of)
            if state is not None:
                classified.append((zone, state))

        for wanted in (ZoneVerdict.IN_ZONE, ZoneVerdict.GRACE_PERIOD, ZoneVerdict.EXPIRED):
            for zone, state in classified:
                if state == wanted:
                    return self._verdict(zone, state, as_of)

        return EligibilityVerdict(state=ZoneVerdict.NOT_IN_ZONE, as_of=as_of)

    def _verdict(self, zone: Zone, state: ZoneVerdict, as_of: date) -> EligibilityVerdict:
        days_remaining = None
        if state == ZoneVerdict.GRACE_PERIOD:
            days_remaining = max(0, (zone.grace_period_end - as_of).days)

        return EligibilityVerdict(
            state=state,
            as_of=as_of,
            zone_id=zone.zone_id,
            zone_name=zone.name,
            designation_type=zone.designation_type,
            grace_period_end=zone.grace_period_end,
            grace_period_days_remaining=days_remaining,
        )
