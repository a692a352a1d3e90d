"""Database models and session management."""

from .connection import drop_db, get_engine, get_session, get_session_factory, init_db
from .models import Base, BulkJobRecord, BusinessRecord, VerificationRecord

__all__ = [
    "Base",
    "BulkJobRecord",
    "BusinessRecord",
    "VerificationRecord",
    "drop_db",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
]
