"""
Collaborators the verification service reads from.

A BusinessSource returns business snapshots by UEI. A CoordinateResolver turns
a principal office address into a coordinate. Both are external systems, so
outages surface as DependencyUnavailable and are never swallowed here.
"""

import logging
import threading
from collections import OrderedDict
from typing import Iterable, Optional, Protocol

import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from hubzone.business import (
    Address,
    Business,
    Certification,
    Ownership,
    Workforce,
)
from hubzone.config import config
from hubzone.database import BusinessRecord, get_session
from hubzone.errors import DependencyUnavailable
from hubzone.geo import Coordinate
from hubzone.normalization import geocoder_key

logger = logging.getLogger(__name__)


class BusinessSource(Protocol):
    def get(self, uei: str) -> Optional[Business]:
        ...

    def identifiers(self) -> list[str]:
        ...


class CoordinateResolver(Protocol):
    def resolve(self, address: Address) -> Optional[Coordinate]:
        ...


class InMemoryBusinessSource:
    """Business snapshots held in a dict, keyed by UEI."""

    def __init__(self, businesses: Iterable[Business] = ()):
        self._businesses = {b.uei.upper(): b for b in businesses}

    def add(self, business: Business) -> None:
        self._businesses[business.uei.upper()] = business

    def get(self, uei: str) -> Optional[Business]:
        return self._businesses.get(uei)

    def identifiers(self) -> list[str]:
        return sorted(self._businesses)

    def __len__(self) -> int:
        return len(self._businesses)


def business_from_record(record: BusinessRecord) -> Business:
    """Convert a businesses row into a snapshot."""
    address = None
    if record.street1 or record.city:
        address = Address(
            street1=record.street1 or "",
            street2=record.street2,
            city=record.city or "",
            state=record.state or "",
            zip_code=record.zip_code or "",
        )

    coordinate = None
    if record.latitude is not None and record.longitude is not None:
        coordinate = Coordinate(record.latitude, record.longitude)

    certification = None
    if record.certification_status is not None:
        certification = Certification(
            status=record.certification_status,
            certification_date=record.certification_date,
            expiration_date=record.expiration_date,
            certification_number=record.certification_number,
        )

    return Business(
        uei=record.uei,
        legal_name=record.legal_name,
        dba_name=record.dba_name,
        cage_code=record.cage_code,
        principal_office=address,
        office_coordinate=coordinate,
        ownership=Ownership(
            qualifying_percentage=float(record.qualifying_ownership_pct or 0),
            citizen_owned=bool(record.citizen_owned),
        ),
        workforce=Workforce(
            total_employees=record.total_employees or 0,
            resident_employees=record.resident_employees or 0,
        ),
        certification=certification,
    )


class SqlBusinessSource:
    """Reads snapshots from the businesses table."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def get(self, uei: str) -> Optional[Business]:
        try:
            with get_session(self.session_factory) as session:
                record = session.scalars(
                    select(BusinessRecord).where(BusinessRecord.uei == uei)
                ).first()
                return business_from_record(record) if record else None
        except SQLAlchemyError as e:
            raise DependencyUnavailable("business source", str(e)) from e

    def identifiers(self) -> list[str]:
        """Every UEI in the businesses table, in order."""
        try:
            with get_session(self.session_factory) as session:
                return list(session.scalars(select(BusinessRecord.uei).order_by(BusinessRecord.uei)))
        except SQLAlchemyError as e:
            raise DependencyUnavailable("business source", str(e)) from e


class HttpGeocoder:
    """
    Geocoder speaking the Census Bureau one-line-address JSON format.

    GET {url}?address=...&benchmark=...&format=json returns
    ``result.addressMatches[].coordinates`` with ``x`` longitude and ``y``
    latitude. An address with no match resolves to None.
    """

    BENCHMARK = "Public_AR_Current"

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url or config.geocoder_url
        self.timeout = timeout if timeout is not None else config.geocoder_timeout
        if not self.url:
            raise ValueError("No geocoder URL configured (geocoder.url / HUBZONE_GEOCODER_URL)")
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def resolve(self, address: Address) -> Optional[Coordinate]:
        query = geocoder_key(address)
        if not query:
            return None

        params = {"address": query, "benchmark": self.BENCHMARK, "format": "json"}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.Timeout as e:
            raise DependencyUnavailable("geocoder", f"timed out after {self.timeout}s") from e
        except (requests.RequestException, ValueError) as e:
            raise DependencyUnavailable("geocoder", str(e)) from e

        matches = (payload.get("result") or {}).get("addressMatches") or []
        if not matches:
            logger.info("No geocoder match for %s", query)
            return None

        coords = matches[0].get("coordinates") or {}
        try:
            return Coordinate(float(coords["y"]), float(coords["x"]))
        except (KeyError, TypeError, ValueError) as e:
            raise DependencyUnavailable("geocoder", f"malformed match for {query}") from e


class CachingResolver:
    """
    Memoizes another resolver by normalized address.

    At most ``max_entries`` answers are kept; the least recently used one is
    evicted first. Failures are not cached.
    """

    def __init__(self, resolver: CoordinateResolver, max_entries: Optional[int] = None):
        self.resolver = resolver
        self.max_entries = max_entries or config.geocoder_cache_size
        self._cache: OrderedDict[str, Optional[Coordinate]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    def resolve(self, address: Address) -> Optional[Coordinate]:
        key = geocoder_key(address)
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                return self._cache[key]

        coordinate = self.resolver.resolve(address)

        with self._lock:
            self._cache[key] = coordinate
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
        return coordinate

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
