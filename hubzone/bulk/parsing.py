"""
Identifier parsing for bulk submissions.

Accepted input is delimited text (comma, tab, semicolon or pipe) with one
column holding 12-character UEIs and an optional header row. Which column
holds the identifiers is decided once, from the first row (the second only
breaks ties for identifier-shaped headers), by resolve_identifier_column();
anything ambiguous is rejected.
"""

import csv
import io
from pathlib import Path
from typing import Iterable, NamedTuple, Optional, Union

from hubzone.business import is_valid_uei, normalize_uei
from hubzone.errors import ValidationError

DELIMITERS = ",\t;|"

# Header keywords, strongest first
HEADER_KEYWORDS = (("uei",), ("id", "number"))


class ColumnResolution(NamedTuple):
    """Where the identifiers are and whether row 0 is a header."""
    index: int
    has_header: bool


def _labelled_column(first_row: list[str], skip: Iterable[int] = ()) -> Optional[int]:
    """Unique column whose header names an identifier, strongest keyword first."""
    names = [cell.strip().lower() for cell in first_row]
    for keywords in HEADER_KEYWORDS:
        matches = [
            i for i, name in enumerate(names)
            if i not in skip and any(k in name for k in keywords)
        ]
        if len(matches) == 1:
            return matches[0]
        if matches:
            return None
    return None


def _holds_identifier(row: Optional[list[str]], index: int) -> bool:
    return bool(row) and index < len(row) and is_valid_uei(normalize_uei(row[index]))


def resolve_identifier_column(first_row: list[str],
                              next_row: Optional[list[str]] = None) -> ColumnResolution:
    """
    Decide which column holds identifiers.

    A first row containing a valid identifier is data: it must be a single
    column or have exactly one identifier-shaped cell. Otherwise the row is a
    header and the column is picked by name: a unique column containing
    "uei", else a unique column containing "id" or "number". A single-column
    file with an unrecognized header uses that column.

    Header names can look like identifiers ("BusinessName" is twelve
    alphanumerics). A row with such a cell is still a header when another
    cell is labelled "uei", or labelled "id"/"number" and ``next_row`` holds an
    identifier in that column.

    Raises:
        ValidationError: no column, or more than one, qualifies.
    """
    if not first_row:
        raise ValidationError("First row is empty")

    candidates = [i for i, cell in enumerate(first_row) if is_valid_uei(normalize_uei(cell))]
    if candidates:
        labelled = _labelled_column(first_row, skip=candidates)
        if labelled is not None and (
            "uei" in first_row[labelled].lower() or _holds_identifier(next_row, labelled)
        ):
            return ColumnResolution(labelled, has_header=True)

        if len(first_row) == 1:
            return ColumnResolution(0, has_header=False)
        if len(candidates) == 1:
            return ColumnResolution(candidates[0], has_header=False)
        raise ValidationError(
            "Ambiguous identifier column",
            [f"first row has identifiers in columns {', '.join(str(i + 1) for i in candidates)}"],
        )

    names = [cell.strip().lower() for cell in first_row]
    for keywords in HEADER_KEYWORDS:
        matches = [i for i, name in enumerate(names) if any(k in name for k in keywords)]
        if len(matches) == 1:
            return ColumnResolution(matches[0], has_header=True)
        if len(matches) > 1:
            raise ValidationError(
                "Ambiguous identifier column",
                [f"headers {', '.join(repr(first_row[i]) for i in matches)} all match {'/'.join(keywords)}"],
            )

    if len(first_row) == 1:
        return ColumnResolution(0, has_header=True)

    raise ValidationError(
        "No identifier column",
        [f"none of the headers {first_row} contains 'uei', 'id' or 'number'"],
    )


def _sniff_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS).delimiter
    except csv.Error:
        # Single column, nothing to sniff
        return ","


def validate_identifiers(values: Iterable[str]) -> list[str]:
    """
    Normalize, validate and deduplicate identifiers, keeping first-seen order.

    Raises:
        ValidationError: listing every malformed identifier.
    """
    seen = set()
    identifiers = []
    errors = []

    for position, raw in enumerate(values, start=1):
        identifier = normalize_uei(raw)
        if not is_valid_uei(identifier):
            errors.append(f"item {position}: {raw!r} is not a valid UEI")
            continue
        if identifier not in seen:
            seen.add(identifier)
            identifiers.append(identifier)

    if errors:
        raise ValidationError(f"{len(errors)} malformed identifier(s)", errors)
    return identifiers


def parse_identifiers(text: str) -> list[str]:
    """
    Parse delimited text into normalized, unique identifiers.

    Blank lines are ignored. Returns an empty list for empty input; callers
    decide whether that is an error.

    Raises:
        ValidationError: unresolvable column or malformed identifiers, with
        one detail per offending line.
    """
    text = text.lstrip("\ufeff")
    if not text.strip():
        return []

    delimiter = _sniff_delimiter(text[:4096])
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    rows = [
        (reader.line_num, row) for row in reader
        if any(cell.strip() for cell in row)
    ]
    if not rows:
        return []

    column = resolve_identifier_column(rows[0][1], rows[1][1] if len(rows) > 1 else None)
    data_rows = rows[1:] if column.has_header else rows

    seen = set()
    identifiers = []
    errors = []

    for line_num, row in data_rows:
        raw = row[column.index] if column.index < len(row) else ""
        identifier = normalize_uei(raw)
        if not identifier:
            errors.append(f"line {line_num}: missing identifier")
            continue
        if not is_valid_uei(identifier):
            errors.append(f"line {line_num}: {raw.strip()!r} is not a valid UEI")
            continue
        if identifier not in seen:
            seen.add(identifier)
            identifiers.append(identifier)

    if errors:
        raise ValidationError(f"{len(errors)} malformed identifier(s)", errors)
    return identifiers


def parse_identifier_file(path: Union[str, Path]) -> list[str]:
    """Read and parse an identifier file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Cannot read {path}", [str(e)]) from e
    return parse_identifiers(text)
