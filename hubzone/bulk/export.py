"""CSV export of bulk verification results."""

import csv
import io
from pathlib import Path
from typing import IO, Iterator, Union

from .job import BulkItemResult, BulkVerificationResult, ItemStatus

CSV_HEADERS = ["UEI Number", "Business Name", "Status", "Compliant", "Risk Level", "Error"]


def _row(item: BulkItemResult) -> list[str]:
    # Only a completed verification can vouch for compliance
    return [
        item.identifier,
        item.business_name or "",
        item.status.value,
        "Yes" if item.is_compliant else "No",
        item.risk_level.value if item.risk_level else "",
        item.error_message or "",
    ]


def export_rows(result: BulkVerificationResult) -> Iterator[list[str]]:
    """One row per requested identifier, in submission order."""
    by_identifier = {item.identifier: item for item in result.results}
    for identifier in result.identifiers:
        item = by_identifier.get(identifier)
        if item is None:
            reason = f"Job {result.status.value} before this identifier was processed"
            item = BulkItemResult(identifier, ItemStatus.NOT_PROCESSED, error_message=reason)
        yield _row(item)


def write_csv(result: BulkVerificationResult, out: IO[str]) -> int:
    """Write the export to an open text stream. Returns the number of data rows."""
    writer = csv.writer(out)
    writer.writerow(CSV_HEADERS)
    count = 0
    for row in export_rows(result):
        writer.writerow(row)
        count += 1
    return count


def export_csv(result: BulkVerificationResult, path: Union[str, Path]) -> int:
    with open(path, "w", newline="", encoding="utf-8") as f:
        return write_csv(result, f)


def to_csv_string(result: BulkVerificationResult) -> str:
    buffer = io.StringIO()
    write_csv(result, buffer)
    return buffer.getvalue()
