"""Shared fixtures: synthetic square zones, in-memory sources and stores."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hubzone.business import (
    Address,
    Business,
    Certification,
    CertificationStatus,
    Ownership,
    Workforce,
)
from hubzone.database import init_db
from hubzone.geo import Coordinate, DesignationType, Zone, ZoneIndex, ZoneIndexHolder
from hubzone.verification import (
    InMemoryBusinessSource,
    InMemoryVerificationStore,
    VerificationService,
)

AS_OF = date(2024, 6, 1)


def square_zone(
    zone_id,
    lon,
    lat,
    size=1.0,
    designation=DesignationType.QUALIFIED_CENSUS_TRACT,
    effective=date(2020, 1, 1),
    holes=(),
    **kwargs,
):
    """Axis-aligned square zone with its south-west corner at (lon, lat)."""
    exterior = (
        (lon, lat),
        (lon + size, lat),
        (lon + size, lat + size),
        (lon, lat + size),
        (lon, lat),
    )
    return Zone(
        zone_id=zone_id,
        name=f"Zone {zone_id}",
        designation_type=designation,
        polygons=((exterior,) + tuple(holes),),
        effective_date=effective,
        **kwargs,
    )


def make_business(
    uei="ABC123456789",
    name="Acme Federal Services LLC",
    coordinate=Coordinate(0.5, 0.5),
    total=100,
    residents=60,
    ownership=100.0,
    citizen=True,
    cert_status=CertificationStatus.APPROVED,
    expiration=date(2026, 1, 1),
    address=Address("100 Main Street", "Dallas", "TX", "75201"),
    **kwargs,
):
    certification = None
    if cert_status is not None:
        certification = Certification(
            status=cert_status,
            certification_date=date(2023, 1, 1),
            expiration_date=expiration,
            certification_number="HZ-2023-0001",
        )
    return Business(
        uei=uei,
        legal_name=name,
        ownership=Ownership(qualifying_percentage=ownership, citizen_owned=citizen),
        workforce=Workforce(total_employees=total, resident_employees=residents),
        certification=certification,
        office_coordinate=coordinate,
        principal_office=address,
        **kwargs,
    )


def numbered_uei(n: int) -> str:
    return f"UEI{n:09d}"


@pytest.fixture
def zone_holder():
    """One active census tract covering lon/lat 0..1."""
    return ZoneIndexHolder(ZoneIndex([square_zone("TRACT-1", 0.0, 0.0)]))


@pytest.fixture
def business_source():
    return InMemoryBusinessSource([make_business()])


@pytest.fixture
def memory_store():
    return InMemoryVerificationStore()


@pytest.fixture
def service(business_source, zone_holder, memory_store):
    return VerificationService(business_source, zone_holder, store=memory_store)


@pytest.fixture
def sqlite_factory():
    """Session factory on a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
