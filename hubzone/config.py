"""
Configuration management for the HUBZone verification engine.

Loads configuration from config.yaml, .env file, and environment variables.
Priority: Environment variables > .env file > config.yaml
"""

import os
from pathlib import Path
from typing import Any

import yaml

# Load .env file if it exists (before reading os.environ)
def _load_dotenv():
    """Load .env file from project root."""
    current = Path.cwd()
    for path in [current] + list(current.parents):
        env_path = path / ".env"
        if env_path.exists():
            with open(env_path) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        # Only set if not already in environment
                        if key not in os.environ:
                            os.environ[key] = value
            break

_load_dotenv()


# Keys converted from environment strings
_INT_KEYS = {"port", "max_workers", "max_batch_size"}
_FLOAT_KEYS = {"timeout_seconds"}


class Config:
    """Application configuration singleton."""

    _instance = None
    _config: dict = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_config()
        return cls._instance

    def _find_config_file(self) -> Path | None:
        """Find config.yaml in current directory or parent directories."""
        current = Path.cwd()
        for path in [current] + list(current.parents):
            config_path = path / "config.yaml"
            if config_path.exists():
                return config_path
        return None

    def _load_config(self) -> None:
        """Load configuration from file and environment."""
        config_path = self._find_config_file()

        if config_path:
            with open(config_path) as f:
                self._config = yaml.safe_load(f) or {}
        else:
            self._config = {}

        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values with environment variables."""
        env_mappings = {
            "HUBZONE_DATABASE_URL": ("database", "url"),
            "HUBZONE_DB_HOST": ("database", "host"),
            "HUBZONE_DB_PORT": ("database", "port"),
            "HUBZONE_DB_NAME": ("database", "name"),
            "HUBZONE_DB_USER": ("database", "user"),
            "HUBZONE_DB_PASSWORD": ("database", "password"),
            "HUBZONE_ZONES_FILE": ("zones", "data_file"),
            "HUBZONE_GEOCODER_URL": ("geocoder", "url"),
            "HUBZONE_GEOCODER_TIMEOUT": ("geocoder", "timeout_seconds"),
            "HUBZONE_MAX_WORKERS": ("bulk", "max_workers"),
            "HUBZONE_REPORT_BASE_URL": ("report", "base_url"),
            "HUBZONE_LOG_LEVEL": ("logging", "level"),
        }

        for env_var, path in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._set_nested(path, value)

    def _set_nested(self, path: tuple, value: Any) -> None:
        """Set a nested config value."""
        current = self._config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        if path[-1] in _INT_KEYS:
            value = int(value)
        elif path[-1] in _FLOAT_KEYS:
            value = float(value)

        current[path[-1]] = value

    def _get_nested(self, path: tuple, default: Any = None) -> Any:
        """Get a nested config value."""
        current = self._config
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        db = self._config.get("database", {})
        if db.get("url"):
            return db["url"]

        host = db.get("host", "localhost")
        port = db.get("port", 5432)
        name = db.get("name", "hubzone")
        user = db.get("user", "postgres")
        password = db.get("password", "")

        # Handle Unix socket paths (start with /)
        if host.startswith("/"):
            if password:
                return f"postgresql://{user}:{password}@/{name}?host={host}"
            return f"postgresql://{user}@/{name}?host={host}"

        if password:
            return f"postgresql://{user}:{password}@{host}:{port}/{name}"
        return f"postgresql://{user}@{host}:{port}/{name}"

    @property
    def zones_file(self) -> Path | None:
        """Get the GeoJSON file holding designated zone polygons."""
        path = self._get_nested(("zones", "data_file"))
        return Path(path) if path else None

    @property
    def zone_refresh_hours(self) -> int:
        """Get zone data refresh interval in hours."""
        return self._get_nested(("zones", "refresh_interval_hours"), 24)

    @property
    def compliance_scan_hour(self) -> int:
        """Get the hour of day (0-23) for the nightly compliance scan."""
        return int(self._get_nested(("scheduler", "compliance_scan_hour"), 2))

    @property
    def grid_cell_degrees(self) -> float:
        """Get the spatial index grid cell size."""
        return float(self._get_nested(("zones", "grid_cell_degrees"), 0.25))

    @property
    def grace_period_days(self) -> int:
        """Get the default grace period for redesignated zones lacking an end date."""
        return self._get_nested(("zones", "grace_period_days"), 1095)

    @property
    def geocoder_url(self) -> str | None:
        """Get the address geocoder endpoint."""
        return self._get_nested(("geocoder", "url"))

    @property
    def geocoder_timeout(self) -> float:
        """Get geocoder request timeout in seconds."""
        return float(self._get_nested(("geocoder", "timeout_seconds"), 10.0))

    @property
    def geocoder_cache_size(self) -> int:
        """Get the number of geocoded addresses kept in memory."""
        return int(self._get_nested(("geocoder", "cache_size"), 10000))

    @property
    def bulk_max_batch_size(self) -> int:
        """Get the largest accepted bulk batch."""
        return self._get_nested(("bulk", "max_batch_size"), 500)

    @property
    def bulk_max_workers(self) -> int:
        """Get the number of concurrent verifications per bulk job."""
        return self._get_nested(("bulk", "max_workers"), 10)

    @property
    def bulk_degraded_threshold(self) -> int:
        """Get the dependency error count that marks a job as degraded."""
        return self._get_nested(("bulk", "degraded_after_errors"), 3)

    @property
    def bulk_failure_threshold(self) -> int:
        """Get the consecutive dependency error count that fails a job."""
        return self._get_nested(("bulk", "fail_after_consecutive_errors"), 10)

    @property
    def compliance_overrides(self) -> dict:
        """Get overrides for compliance thresholds and risk weights."""
        return self._get_nested(("compliance",), {}) or {}

    @property
    def report_base_url(self) -> str:
        """Get the public site that verification report links point to."""
        return self._get_nested(("report", "base_url"), "https://hubzone.gov")

    @property
    def report_valid_days(self) -> int:
        """Get how many days a verification report stays valid."""
        return self._get_nested(("report", "valid_days"), 30)

    @property
    def log_level(self) -> str:
        """Get logging level name."""
        return str(self._get_nested(("logging", "level"), "INFO")).upper()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def get(self, *path: str, default: Any = None) -> Any:
        """Get a config value by path."""
        return self._get_nested(path, default)


# Global config instance
config = Config()
