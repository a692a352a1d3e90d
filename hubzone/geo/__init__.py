"""Designated zone geometry, spatial index and dataset loading."""

from .models import (
    Coordinate,
    DesignationType,
    SPECIFICITY,
    Zone,
    ZoneStatus,
)
from .index import ZoneIndex, ZoneIndexHolder, MAX_RADIUS_MILES, MAX_RADIUS_RESULTS
from .loader import ZoneRefresher, load_zones, zone_from_feature

__all__ = [
    "Coordinate",
    "DesignationType",
    "SPECIFICITY",
    "Zone",
    "ZoneStatus",
    "ZoneIndex",
    "ZoneIndexHolder",
    "MAX_RADIUS_MILES",
    "MAX_RADIUS_RESULTS",
    "ZoneRefresher",
    "load_zones",
    "zone_from_feature",
]
