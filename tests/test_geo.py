"""Tests for zone geometry, the spatial index and dataset loading."""

import json
import math
from datetime import date, timedelta

import pytest

from conftest import square_zone
from hubzone.errors import DependencyUnavailable, ValidationError
from hubzone.geo import (
    SPECIFICITY,
    Coordinate,
    DesignationType,
    Zone,
    ZoneIndex,
    ZoneIndexHolder,
    ZoneRefresher,
    load_zones,
    zone_from_feature,
)
from hubzone.geo.geometry import MILES_PER_DEGREE_LAT, distance_to_zone_miles, point_in_polygon


HOLE = ((0.4, 0.4), (0.6, 0.4), (0.6, 0.6), (0.4, 0.6), (0.4, 0.4))


# Geometry

def test_inside_outside():
    """Test point containment for a single square zone."""
    zone = square_zone("A", 0.0, 0.0)
    index = ZoneIndex([zone])
    assert index.resolve(Coordinate(0.5, 0.5)) == [zone]
    assert index.resolve(Coordinate(1.5, 0.5)) == []
    assert index.resolve(Coordinate(0.5, -0.01)) == []


def test_boundary_is_inside():
    """Test that points on an edge or corner count as inside."""
    zone = square_zone("A", 0.0, 0.0)
    index = ZoneIndex([zone])
    assert index.resolve(Coordinate(0.0, 0.5)) == [zone]   # south edge
    assert index.resolve(Coordinate(1.0, 0.3)) == [zone]   # north edge
    assert index.resolve(Coordinate(1.0, 1.0)) == [zone]   # corner


def test_hole_excluded_but_hole_edge_included():
    """Test that holes are excluded but their edges are not."""
    polygon = square_zone("A", 0.0, 0.0, holes=(HOLE,)).polygons[0]
    assert not point_in_polygon(0.5, 0.5, polygon)
    assert point_in_polygon(0.4, 0.5, polygon)
    assert point_in_polygon(0.2, 0.2, polygon)


def test_multipolygon():
    """Test a zone made of two disjoint polygons."""
    west = square_zone("W", 0.0, 0.0).polygons[0]
    east = square_zone("E", 5.0, 0.0).polygons[0]
    zone = Zone(
        zone_id="MULTI",
        name="Split tract",
        designation_type=DesignationType.QUALIFIED_CENSUS_TRACT,
        polygons=(west, east),
        effective_date=date(2020, 1, 1),
    )
    index = ZoneIndex([zone])
    assert index.resolve(Coordinate(0.5, 0.5)) == [zone]
    assert index.resolve(Coordinate(0.5, 5.5)) == [zone]
    assert index.resolve(Coordinate(0.5, 3.0)) == []


def test_distance():
    """Test distance from a point to a zone edge in miles."""
    zone = square_zone("A", 0.0, 0.0)
    assert distance_to_zone_miles(zone, Coordinate(0.5, 0.5)) == 0.0
    # Half a degree of longitude at the equator
    assert distance_to_zone_miles(zone, Coordinate(0.5, -0.5)) == pytest.approx(34.5, rel=1e-3)


def test_distance_shrinks_with_latitude():
    """Test that a degree of longitude is scaled by the cosine of the query latitude."""
    zone = square_zone("N", 0.0, 60.0)
    expected = 0.5 * MILES_PER_DEGREE_LAT * math.cos(math.radians(60.5))
    assert distance_to_zone_miles(zone, Coordinate(60.5, -0.5)) == pytest.approx(expected)
    assert expected < 17.5


# Zone Invariants

def test_redesignated_requires_grace_end():
    """Test that a redesignated zone needs a grace period end."""
    with pytest.raises(ValidationError):
        square_zone("R", 0.0, 0.0, redesignated=True)


def test_grace_end_must_follow_effective_date():
    with pytest.raises(ValidationError):
        square_zone("R", 0.0, 0.0, redesignated=True, grace_period_end=date(2020, 1, 1))


def test_grace_end_without_redesignation():
    with pytest.raises(ValidationError):
        square_zone("R", 0.0, 0.0, grace_period_end=date(2025, 1, 1))


def test_empty_geometry():
    with pytest.raises(ValidationError):
        Zone("X", "Empty", DesignationType.INDIAN_LANDS, (), date(2020, 1, 1))


def test_specificity_covers_every_designation():
    """Test that every designation type has its own rank."""
    assert set(SPECIFICITY) == set(DesignationType)
    assert len(set(SPECIFICITY.values())) == len(DesignationType)


# Zone Index

def test_specificity_order():
    """Test that overlapping zones resolve most specific first."""
    tract = square_zone("TRACT", 0.0, 0.0)
    tribal = square_zone("TRIBAL", 0.0, 0.0, designation=DesignationType.INDIAN_LANDS)
    county = square_zone("COUNTY", 0.0, 0.0, designation=DesignationType.NON_METRO_COUNTY)
    base = square_zone("BRAC", 0.0, 0.0, designation=DesignationType.BASE_CLOSURE_AREA)

    index = ZoneIndex([county, tract, base, tribal])
    ids = [z.zone_id for z in index.resolve(Coordinate(0.5, 0.5))]
    assert ids == ["TRIBAL", "BRAC", "TRACT", "COUNTY"]


def test_tie_break_earliest_effective_then_id():
    """Test ordering among zones of equal specificity."""
    newer = square_zone("A-NEW", 0.0, 0.0, effective=date(2022, 1, 1))
    older = square_zone("Z-OLD", 0.0, 0.0, effective=date(2018, 1, 1))
    twin = square_zone("B-OLD", 0.0, 0.0, effective=date(2018, 1, 1))

    ids = [z.zone_id for z in ZoneIndex([newer, older, twin]).resolve(Coordinate(0.5, 0.5))]
    assert ids == ["B-OLD", "Z-OLD", "A-NEW"]


def test_zone_spanning_many_cells():
    """Test a zone larger than one grid cell."""
    big = square_zone("BIG", -3.0, -3.0, size=6.0)
    index = ZoneIndex([big], cell_degrees=0.25)
    assert index.resolve(Coordinate(2.9, -2.9)) == [big]
    assert index.resolve(Coordinate(-2.9, 2.9)) == [big]


def test_duplicate_ids_keep_first():
    first = square_zone("DUP", 0.0, 0.0)
    second = square_zone("DUP", 5.0, 5.0)
    index = ZoneIndex([first, second])
    assert len(index) == 1
    assert index.get("DUP") is first


def test_nearest():
    """Test nearest zones ordered by distance."""
    near = square_zone("NEAR", 0.0, 1.0, size=0.5)
    far = square_zone("FAR", 0.0, 3.0, size=0.5)
    index = ZoneIndex([far, near])

    found = index.nearest(Coordinate(0.0, 0.25), limit=2, max_distance_miles=500)
    assert [z.zone_id for z, _ in found] == ["NEAR", "FAR"]
    assert found[0][1] == pytest.approx(69.0, rel=1e-3)
    assert found[1][1] == pytest.approx(207.0, rel=1e-3)


def test_nearest_containing_zone_is_zero():
    index = ZoneIndex([square_zone("A", 0.0, 0.0)])
    zone, distance = index.nearest(Coordinate(0.5, 0.5))[0]
    assert zone.zone_id == "A"
    assert distance == 0.0


def test_within_radius():
    index = ZoneIndex([square_zone("A", 0.0, 0.0)])
    point = Coordinate(0.5, -0.5)   # 34.5 miles west

    assert [z.zone_id for z, _ in index.within_radius(point, 40)] == ["A"]
    assert index.within_radius(point, 30) == []


def test_within_radius_is_capped():
    """Test that radius searches stop at 50 miles."""
    index = ZoneIndex([square_zone("A", 0.0, 0.0)])
    point = Coordinate(0.5, -1.0)   # 69 miles west
    assert index.within_radius(point, 100) == []


def test_holder_publish_is_atomic_swap():
    """Test that publishing swaps the index without touching old snapshots."""
    old = ZoneIndex([square_zone("A", 0.0, 0.0)])
    holder = ZoneIndexHolder(old)
    snapshot = holder.current()

    new = ZoneIndex([square_zone("B", 5.0, 5.0)])
    assert holder.publish(new) is old
    assert holder.current() is new
    assert holder.version == 2
    # Readers holding the old snapshot are unaffected
    assert [z.zone_id for z in snapshot.resolve(Coordinate(0.5, 0.5))] == ["A"]


def _feature(zone_id, props=None, geometry=None):
    return {
        "type": "Feature",
        "properties": {
            "zone_id": zone_id,
            "name": f"Tract {zone_id}",
            "zone_type": "qualified_census_tract",
            "effective_date": "2020-01-01",
            **(props or {}),
        },
        "geometry": geometry or {
            "type": "Polygon",
            "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]],
        },
    }


# Loader

def test_feature_defaults_grace_from_expiration():
    """Test the default grace period for a redesignated feature."""
    zone = zone_from_feature(
        _feature("R1", {"zone_type": "redesignated", "expiration_date": "2023-06-30"}),
        grace_period_days=1095,
    )
    assert zone.redesignated
    assert zone.grace_period_end == date(2023, 6, 30) + timedelta(days=1095)


def test_explicit_grace_end():
    zone = zone_from_feature(
        _feature("R2", {
            "is_redesignated": "true",
            "expiration_date": "2023-06-30",
            "grace_period_end_date": "2025-01-01",
        }),
        grace_period_days=1095,
    )
    assert zone.grace_period_end == date(2025, 1, 1)


def test_multipolygon_feature():
    geometry = {
        "type": "MultiPolygon",
        "coordinates": [
            [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]],
            [[[5, 5], [6, 5], [6, 6], [5, 6], [5, 5]]],
        ],
    }
    zone = zone_from_feature(_feature("M1", geometry=geometry), grace_period_days=1095)
    assert len(zone.polygons) == 2


def test_unknown_zone_type():
    with pytest.raises(ValidationError):
        zone_from_feature(_feature("X", {"zone_type": "enterprise_zone"}), grace_period_days=1095)


def test_load_skips_invalid_features(tmp_path):
    """Test that a bad feature is skipped, not fatal."""
    path = tmp_path / "zones.geojson"
    path.write_text(json.dumps({
        "type": "FeatureCollection",
        "features": [
            _feature("GOOD"),
            _feature("BAD", {"effective_date": None}),
        ],
    }))
    zones = load_zones(path, grace_period_days=1095)
    assert [z.zone_id for z in zones] == ["GOOD"]


def test_refresher_publishes(tmp_path):
    path = tmp_path / "zones.geojson"
    path.write_text(json.dumps({"type": "FeatureCollection", "features": [_feature("T1")]}))

    holder = ZoneIndexHolder()
    assert ZoneRefresher(holder, path).refresh() == 1
    assert holder.current().get("T1") is not None


def test_refresher_keeps_index_when_file_missing(tmp_path):
    """Test that a failed refresh keeps the published index."""
    holder = ZoneIndexHolder(ZoneIndex([square_zone("KEEP", 0.0, 0.0)]))
    with pytest.raises(DependencyUnavailable):
        ZoneRefresher(holder, tmp_path / "missing.geojson").refresh()
    assert holder.current().get("KEEP") is not None
