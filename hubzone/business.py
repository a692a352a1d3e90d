"""Business snapshot types read from the business-management subsystem."""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum as PyEnum
from typing import Optional

from hubzone.geo import Coordinate


class CertificationStatus(PyEnum):
    """Certification application status."""
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True)
class Address:
    """Postal address of a principal office."""
    street1: str
    city: str
    state: str
    zip_code: str
    street2: Optional[str] = None
    country: str = "US"


@dataclass(frozen=True)
class Ownership:
    """Ownership structure summary."""
    qualifying_percentage: float
    citizen_owned: bool


@dataclass(frozen=True)
class Workforce:
    """Employee roster summary."""
    total_employees: int
    resident_employees: int


@dataclass(frozen=True)
class Certification:
    """Most recent certification record."""
    status: CertificationStatus
    certification_date: Optional[date] = None
    expiration_date: Optional[date] = None
    certification_number: Optional[str] = None


@dataclass(frozen=True)
class Business:
    """Point-in-time snapshot of a business, keyed by its 12-character UEI."""
    uei: str
    legal_name: str
    ownership: Ownership
    workforce: Workforce
    certification: Optional[Certification] = None
    principal_office: Optional[Address] = None
    office_coordinate: Optional[Coordinate] = None
    dba_name: Optional[str] = None
    cage_code: Optional[str] = None

    def __repr__(self) -> str:
        return f"<Business {self.uei}: {self.legal_name}>"


UEI_PATTERN = re.compile(r"^[A-Z0-9]{12}$")


def normalize_uei(value: Optional[str]) -> str:
    """Strip and uppercase a raw identifier. Surrounding quotes are dropped."""
    if value is None:
        return ""
    return value.strip().strip('"').strip("'").strip().upper()


def is_valid_uei(value: str) -> bool:
    """True for an already-normalized 12-character alphanumeric identifier."""
    return bool(UEI_PATTERN.match(value))
