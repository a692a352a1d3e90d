"""Bulk verification jobs."""

from .export import CSV_HEADERS, export_csv, to_csv_string, write_csv
from .job import (
    BulkItemResult,
    BulkJob,
    BulkSummary,
    BulkVerificationResult,
    ItemStatus,
    JobProgress,
    JobStatus,
)
from .orchestrator import BulkVerificationOrchestrator
from .parsing import (
    ColumnResolution,
    parse_identifier_file,
    parse_identifiers,
    resolve_identifier_column,
    validate_identifiers,
)

__all__ = [
    "BulkItemResult",
    "BulkJob",
    "BulkSummary",
    "BulkVerificationOrchestrator",
    "BulkVerificationResult",
    "CSV_HEADERS",
    "ColumnResolution",
    "ItemStatus",
    "JobProgress",
    "JobStatus",
    "export_csv",
    "parse_identifier_file",
    "parse_identifiers",
    "resolve_identifier_column",
    "to_csv_string",
    "validate_identifiers",
    "write_csv",
]
