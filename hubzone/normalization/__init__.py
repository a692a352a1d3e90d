"""Address normalization for geocoding and reports."""

from .addresses import ParsedAddress, format_address, geocoder_key, normalize_address

__all__ = ["ParsedAddress", "format_address", "geocoder_key", "normalize_address"]
