# =============================================================================
# finance_core/config/settings.py
# Settings for the Offline Data Layer
# =============================================================================
"""
Settings are resolved in three layers, later layers winning:

1. Defaults on OfflineSettings
2. The [offline] table of a TOML file (offline.toml, or FINANCE_OFFLINE_CONFIG)
3. Environment variables (a .env file is loaded first, never overriding
   variables that are already set)

Expected offline.toml format:
    [offline]
    api_base_url = "https://osm-finance.example.com/api"
    api_key = "your_api_key"
    request_timeout = 15
    db_path = "local_data/offline.db"
    resource_prefixes = ["/daily-customers", "/daily-loans", "/daily-payments"]
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import toml
from dotenv import load_dotenv

from finance_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "offline.toml"
CONFIG_PATH_ENV = "FINANCE_OFFLINE_CONFIG"

# Environment variable -> (setting name, converter)
ENV_OVERRIDES = {
    "FINANCE_API_URL": ("api_base_url", str),
    "FINANCE_API_KEY": ("api_key", str),
    "FINANCE_OFFLINE_DB": ("db_path", Path),
    "FINANCE_REQUEST_TIMEOUT": ("request_timeout", float),
    "FINANCE_LOG_LEVEL": ("log_level", str),
}

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class OfflineSettings:
    """Configuration for the transport, local store and connectivity checks."""
    api_base_url: str = "http://localhost:5000/api"
    api_key: Optional[str] = None
    request_timeout: float = 15.0
    db_path: Path = Path("local_data") / "offline.db"
    resource_prefixes: Tuple[str, ...] = ()
    retryable_statuses: Tuple[int, ...] = (502, 503, 504)
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    connection_timeout: float = 5.0
    log_level: str = "INFO"
    log_to_file: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> OfflineSettings:
        """Check value ranges; returns self so it can be chained."""
        for name in (
            "request_timeout",
            "check_interval_online",
            "check_interval_offline",
            "connection_timeout",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive, got {value}",
                    config_key=name,
                    expected_type="positive number",
                )

        if not self.api_base_url:
            raise ConfigurationError("api_base_url must not be empty", config_key="api_base_url")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="log_level",
                expected_type=" | ".join(VALID_LOG_LEVELS),
            )

        return self


def _coerce(name: str, value: Any) -> Any:
    """Convert raw TOML / env values to the field's type."""
    if name == "db_path":
        return Path(value)
    if name in ("resource_prefixes", "retryable_statuses"):
        if not isinstance(value, (list, tuple)):
            raise ConfigurationError(
                f"{name} must be a list", config_key=name, expected_type="list"
            )
        return tuple(int(v) for v in value) if name == "retryable_statuses" else tuple(value)
    if name == "headers":
        if not isinstance(value, dict):
            raise ConfigurationError(
                f"{name} must be a table", config_key=name, expected_type="table"
            )
        return {str(k): str(v) for k, v in value.items()}
    return value


def _read_config_file(config_path: Optional[Union[str, Path]]) -> Dict[str, Any]:
    """Load the [offline] table from a TOML file, or {} when there is none."""
    explicit = config_path is not None or os.getenv(CONFIG_PATH_ENV)
    path = Path(config_path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_FILE)

    if not path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {path}", config_key="config_path")
        return {}

    try:
        data = toml.load(path)
    except (toml.TomlDecodeError, OSError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}", config_key="config_path")

    section = data.get("offline", {})
    logger.debug(f"Loaded offline settings from {path}")
    return section


def load_settings(config_path: Optional[Union[str, Path]] = None) -> OfflineSettings:
    """
    Build OfflineSettings from defaults, TOML file and environment.

    Args:
        config_path: Explicit TOML file; falls back to FINANCE_OFFLINE_CONFIG,
            then ./offline.toml (optional)

    Returns:
        Validated OfflineSettings

    Raises:
        ConfigurationError: On unknown keys, bad types or invalid values
    """
    load_dotenv(override=False)

    known = {f.name for f in fields(OfflineSettings)}
    overrides: Dict[str, Any] = {}

    for key, value in _read_config_file(config_path).items():
        if key not in known:
            raise ConfigurationError(f"Unknown setting: {key}", config_key=key)
        overrides[key] = _coerce(key, value)

    for env_name, (name, converter) in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            overrides[name] = converter(raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid value for {env_name}: {raw!r}",
                config_key=name,
                expected_type=converter.__name__,
            )

    return replace(OfflineSettings(), **overrides).validate()
