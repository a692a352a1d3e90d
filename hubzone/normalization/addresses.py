"""Address normalization utilities."""

import re
from typing import Optional, NamedTuple

from hubzone.business import Address


class ParsedAddress(NamedTuple):
    """Normalized address components."""
    street: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    normalized: str


# Street type abbreviations (USPS Publication 28)
STREET_TYPES = {
    "avenue": "AVE",
    "boulevard": "BLVD",
    "circle": "CIR",
    "court": "CT",
    "drive": "DR",
    "expressway": "EXPY",
    "freeway": "FWY",
    "highway": "HWY",
    "lane": "LN",
    "parkway": "PKWY",
    "place": "PL",
    "road": "RD",
    "square": "SQ",
    "street": "ST",
    "terrace": "TER",
    "trail": "TRL",
}

DIRECTIONS = {
    "north": "N",
    "south": "S",
    "east": "E",
    "west": "W",
    "northeast": "NE",
    "northwest": "NW",
    "southeast": "SE",
    "southwest": "SW",
}

UNIT_TYPES = {
    "apartment": "APT",
    "building": "BLDG",
    "floor": "FL",
    "suite": "STE",
    "room": "RM",
    "#": "UNIT",
}

STATE_ABBREVS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "puerto rico": "PR",
    "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "guam": "GU",
}


def normalize_address(address: Optional[Address]) -> ParsedAddress:
    """Normalize a principal office address into upper-case USPS style."""
    if address is None:
        return ParsedAddress(None, None, None, None, "")

    street = " ".join(
        _normalize_street(line) for line in (address.street1, address.street2) if line
    ) or None
    city = re.sub(r"\s+", " ", address.city.upper().strip()) if address.city else None
    state = _normalize_state(address.state) if address.state else None
    zip_code = _normalize_zip(address.zip_code) if address.zip_code else None

    parts = [p for p in [street, city, state, zip_code] if p]
    return ParsedAddress(street, city, state, zip_code, " ".join(parts))


def geocoder_key(address: Optional[Address]) -> str:
    """Cache key under which geocoding results for an address are stored."""
    return normalize_address(address).normalized


def format_address(address: Optional[Address]) -> str:
    """Single-line display form, e.g. ``100 Main St, Suite 4, Dallas, TX 75201``."""
    if address is None:
        return ""
    lines = [address.street1, address.street2, address.city]
    text = ", ".join(line.strip() for line in lines if line and line.strip())
    tail = " ".join(p.strip() for p in (address.state, address.zip_code) if p and p.strip())
    if tail:
        text = f"{text}, {tail}" if text else tail
    return text


def _normalize_street(street: str) -> str:
    normalized = re.sub(r"\s+", " ", street.upper().strip())

    # Standardize PO Box before the periods are stripped
    normalized = re.sub(r"\bP\.?\s*O\.?\s*BOX\b", "PO BOX", normalized)

    words = []
    for word in normalized.replace(".", "").replace(",", " ").split():
        lower = word.lower()
        words.append(
            STREET_TYPES.get(lower)
            or DIRECTIONS.get(lower)
            or UNIT_TYPES.get(lower)
            or word
        )
    return " ".join(words)


def _normalize_state(state: str) -> str:
    """Normalize state to 2-letter abbreviation."""
    state = re.sub(r"\s+", " ", state.strip().lower())

    if len(state) == 2:
        return state.upper()

    return STATE_ABBREVS.get(state, state.upper()[:2])


def _normalize_zip(zip_code: str) -> str:
    """Normalize ZIP code to 5 digits."""
    digits = re.sub(r"[^\d]", "", zip_code)
    return digits[:5] if len(digits) >= 5 else digits
