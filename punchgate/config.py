from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .models import DEFAULT_DEVICE_PORT

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}
_LOG_FORMATS = {"text", "json"}


class ConfigError(ValueError):
    """Raised when environment configuration is missing or invalid."""


def _get_optional_str(name: str) -> str | None:
    v = os.getenv(name)
    if v is None:
        return None
    vv = v.strip()
    return vv or None


def _get_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    value = v.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {v!r}")


def _get_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        value = float(v)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {v!r}") from exc
    if value <= minimum:
        raise ConfigError(f"{name} must be > {minimum}, got {v!r}")
    return value


def _get_int(name: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        value = int(v.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an int, got {v!r}") from exc
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {v!r}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got {v!r}")
    return value


@dataclass(frozen=True)
class Settings:
    log_level: str
    log_format: str

    # Downstream ingestion API
    punch_url: str
    tenant_id: str | None
    ingest_api_key: str | None
    ingest_timeout_s: float

    # Branch directory (exactly one source)
    branches_url: str | None
    branches_path: Path | None
    branches_api_key: str | None
    branches_timeout_s: float

    # Terminals
    device_port: int
    device_timeout_s: float
    device_password: int
    device_force_udp: bool

    # Scheduling
    poll_interval_s: float
    max_workers: int
    advance_on_send_failure: bool


def load_settings_from_env() -> Settings:
    punch_url = _get_optional_str("PUNCH_URL")
    if not punch_url:
        raise ConfigError("PUNCH_URL is required")

    branches_url = _get_optional_str("BRANCHES_URL")
    branches_path_raw = _get_optional_str("BRANCHES_PATH")
    if branches_url and branches_path_raw:
        raise ConfigError("set only one of BRANCHES_URL and BRANCHES_PATH")
    if not branches_url and not branches_path_raw:
        raise ConfigError("one of BRANCHES_URL or BRANCHES_PATH is required")

    log_format = (os.getenv("LOG_FORMAT", "text").strip().lower() or "text")
    if log_format not in _LOG_FORMATS:
        raise ConfigError(f"LOG_FORMAT must be one of {sorted(_LOG_FORMATS)}, got {log_format!r}")

    return Settings(
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"),
        log_format=log_format,
        punch_url=punch_url,
        tenant_id=_get_optional_str("TENANT_ID"),
        ingest_api_key=_get_optional_str("INGEST_API_KEY"),
        ingest_timeout_s=_get_float("INGEST_TIMEOUT_S", 10.0),
        branches_url=branches_url,
        branches_path=Path(branches_path_raw).expanduser() if branches_path_raw else None,
        branches_api_key=_get_optional_str("BRANCHES_API_KEY"),
        branches_timeout_s=_get_float("BRANCHES_TIMEOUT_S", 10.0),
        device_port=_get_int("DEVICE_PORT", DEFAULT_DEVICE_PORT, maximum=65535),
        device_timeout_s=_get_float("DEVICE_TIMEOUT_S", 5.0),
        device_password=_get_int("DEVICE_PASSWORD", 0, minimum=0),
        device_force_udp=_get_bool("DEVICE_FORCE_UDP", False),
        poll_interval_s=_get_float("POLL_INTERVAL_S", 5.0),
        max_workers=_get_int("MAX_WORKERS", 1),
        advance_on_send_failure=_get_bool("ADVANCE_ON_SEND_FAILURE", False),
    )
