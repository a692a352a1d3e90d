"""HUBZone eligibility and compliance verification engine."""

__version__ = "0.3.0"
