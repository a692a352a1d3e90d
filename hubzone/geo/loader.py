"""
Zone dataset loading.

Reads a GeoJSON FeatureCollection of designated areas (the output of the
boundary ingestion pipeline) and builds ZoneIndex snapshots from it.

Expected feature properties:
    zone_id (or id/GEOID), name, zone_type, status, effective_date
    (or designation_date), expiration_date, is_redesignated,
    grace_period_end_date, state, county
"""

import json
import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from hubzone.config import config
from hubzone.errors import DependencyUnavailable, ValidationError
from .index import ZoneIndex, ZoneIndexHolder
from .models import DesignationType, Polygon, Zone, ZoneStatus

logger = logging.getLogger(__name__)


def _parse_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)[:10]).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1")
    return bool(value)


def _ring(positions) -> tuple:
    return tuple((float(p[0]), float(p[1])) for p in positions)


def _polygons(geometry: dict) -> tuple[Polygon, ...]:
    geom_type = geometry.get("type")
    coords = geometry.get("coordinates") or []

    if geom_type == "Polygon":
        return (tuple(_ring(ring) for ring in coords),)
    if geom_type == "MultiPolygon":
        return tuple(tuple(_ring(ring) for ring in polygon) for polygon in coords)
    raise ValidationError(f"Unsupported geometry type: {geom_type}")


def zone_from_feature(feature: dict, grace_period_days: int) -> Zone:
    """
    Build a Zone from a GeoJSON feature.

    Redesignated zones without an explicit grace period end get one
    ``grace_period_days`` after their expiration date.
    """
    props = feature.get("properties") or {}
    zone_id = props.get("zone_id") or props.get("id") or feature.get("id") or props.get("GEOID")
    if not zone_id:
        raise ValidationError("Feature has no zone id")

    try:
        designation = DesignationType(props.get("zone_type") or props.get("designation_type"))
    except ValueError:
        raise ValidationError(f"Zone {zone_id}: unknown zone type {props.get('zone_type')!r}")

    effective = _parse_date(props.get("effective_date") or props.get("designation_date"))
    if effective is None:
        raise ValidationError(f"Zone {zone_id}: missing effective date")

    expiration = _parse_date(props.get("expiration_date"))
    redesignated = _parse_bool(props.get("is_redesignated", False)) or (
        designation == DesignationType.REDESIGNATED
    )
    grace_end = _parse_date(props.get("grace_period_end_date"))
    if redesignated and grace_end is None and expiration is not None:
        grace_end = expiration + timedelta(days=grace_period_days)

    status = props.get("status") or "active"
    try:
        zone_status = ZoneStatus(status)
    except ValueError:
        # Upstream "redesignated"/"pending" statuses carry no extra meaning here
        zone_status = ZoneStatus.ACTIVE

    return Zone(
        zone_id=str(zone_id),
        name=props.get("name") or str(zone_id),
        designation_type=designation,
        polygons=_polygons(feature.get("geometry") or {}),
        effective_date=effective,
        status=zone_status,
        expiration_date=expiration,
        redesignated=redesignated,
        grace_period_end=grace_end if redesignated else None,
        state=props.get("state"),
        county=props.get("county"),
    )


def load_zones(path: Path, grace_period_days: Optional[int] = None) -> list[Zone]:
    """
    Load zones from a GeoJSON file.

    Invalid features are logged and skipped so one bad record does not block
    a refresh.
    """
    if grace_period_days is None:
        grace_period_days = config.grace_period_days

    with open(path) as f:
        data = json.load(f)

    features = data.get("features", []) if isinstance(data, dict) else []
    zones = []
    skipped = 0

    for feature in tqdm(features, desc="  Loading zones", disable=len(features) < 1000):
        try:
            zones.append(zone_from_feature(feature, grace_period_days))
        except ValidationError as e:
            skipped += 1
            logger.warning("Skipping zone feature: %s", e)

    logger.info("Loaded %d zones from %s (%d skipped)", len(zones), path, skipped)
    return zones


class ZoneRefresher:
    """Rebuilds the zone index from the dataset file and publishes it."""

    def __init__(
        self,
        holder: ZoneIndexHolder,
        path: Path,
        cell_degrees: Optional[float] = None,
    ):
        self.holder = holder
        self.path = Path(path)
        self.cell_degrees = cell_degrees or config.grid_cell_degrees

    def refresh(self) -> int:
        """
        Load the dataset and publish a new index.

        The previous index stays published if loading fails.

        Returns:
            Number of zones in the new index.
        """
        try:
            zones = load_zones(self.path)
        except (OSError, json.JSONDecodeError) as e:
            raise DependencyUnavailable("zone data", f"{self.path}: {e}")

        index = ZoneIndex(zones, cell_degrees=self.cell_degrees, source=str(self.path))
        self.holder.publish(index)
        return len(index)
