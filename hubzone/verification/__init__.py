"""Single-business verification, history and reports."""

from .models import NotFound, Verification
from .report import VerificationReport, build_report
from .service import VerificationService
from .sources import (
    BusinessSource,
    CachingResolver,
    CoordinateResolver,
    HttpGeocoder,
    InMemoryBusinessSource,
    SqlBusinessSource,
)
from .store import (
    InMemoryVerificationStore,
    SqlVerificationStore,
    VerificationFilters,
    VerificationStore,
)

__all__ = [
    "BusinessSource",
    "CachingResolver",
    "CoordinateResolver",
    "HttpGeocoder",
    "InMemoryBusinessSource",
    "InMemoryVerificationStore",
    "NotFound",
    "SqlBusinessSource",
    "SqlVerificationStore",
    "Verification",
    "VerificationFilters",
    "VerificationReport",
    "VerificationService",
    "VerificationStore",
    "build_report",
]
