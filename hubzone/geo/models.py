"""Zone and coordinate types."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum as PyEnum
from typing import NamedTuple, Optional

from hubzone.errors import ValidationError


class Coordinate(NamedTuple):
    """WGS84 point."""
    latitude: float
    longitude: float

    def validate(self) -> "Coordinate":
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError(f"Longitude out of range: {self.longitude}")
        return self


class DesignationType(PyEnum):
    """HUBZone designation categories."""
    QUALIFIED_CENSUS_TRACT = "qualified_census_tract"
    NON_METRO_COUNTY = "qualified_non_metro_county"
    INDIAN_LANDS = "indian_lands"
    BASE_CLOSURE_AREA = "base_closure_area"
    REDESIGNATED = "redesignated"


# Lower rank resolves first when zones overlap. Must list every DesignationType.
SPECIFICITY = {
    DesignationType.INDIAN_LANDS: 0,
    DesignationType.BASE_CLOSURE_AREA: 1,
    DesignationType.QUALIFIED_CENSUS_TRACT: 2,
    DesignationType.NON_METRO_COUNTY: 3,
    DesignationType.REDESIGNATED: 4,
}


class ZoneStatus(PyEnum):
    """Designation status as delivered by the zone data refresh."""
    ACTIVE = "active"
    EXPIRED = "expired"


# A ring is a closed sequence of (longitude, latitude) positions; a polygon is
# an exterior ring followed by its holes.
Ring = tuple[tuple[float, float], ...]
Polygon = tuple[Ring, ...]


class BoundingBox(NamedTuple):
    """Axis-aligned box in degrees."""
    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def contains(self, lon: float, lat: float) -> bool:
        return self.min_lon <= lon <= self.max_lon and self.min_lat <= lat <= self.max_lat


@dataclass(frozen=True)
class Zone:
    """A designated area with a time-limited eligibility designation."""
    zone_id: str
    name: str
    designation_type: DesignationType
    polygons: tuple[Polygon, ...]
    effective_date: date
    status: ZoneStatus = ZoneStatus.ACTIVE
    expiration_date: Optional[date] = None
    redesignated: bool = False
    grace_period_end: Optional[date] = None
    state: Optional[str] = None
    county: Optional[str] = None
    bbox: BoundingBox = field(init=False, compare=False, repr=False)

    def __post_init__(self):
        if self.redesignated:
            if self.grace_period_end is None:
                raise ValidationError(
                    f"Zone {self.zone_id} is redesignated but has no grace period end date"
                )
            if self.grace_period_end <= self.effective_date:
                raise ValidationError(
                    f"Zone {self.zone_id} grace period ends {self.grace_period_end}, "
                    f"not after its effective date {self.effective_date}"
                )
        elif self.grace_period_end is not None:
            raise ValidationError(
                f"Zone {self.zone_id} has a grace period end date but is not redesignated"
            )

        if not self.polygons:
            raise ValidationError(f"Zone {self.zone_id} has no polygons")
        for polygon in self.polygons:
            if not polygon or len(polygon[0]) < 3:
                raise ValidationError(f"Zone {self.zone_id} has a degenerate polygon")

        positions = [pos for polygon in self.polygons for pos in polygon[0]]
        object.__setattr__(self, "bbox", BoundingBox(
            min_lon=min(p[0] for p in positions),
            min_lat=min(p[1] for p in positions),
            max_lon=max(p[0] for p in positions),
            max_lat=max(p[1] for p in positions),
        ))

    @property
    def specificity(self) -> int:
        return SPECIFICITY[self.designation_type]

    def __repr__(self) -> str:
        return f"<Zone {self.zone_id}: {self.designation_type.value}>"
