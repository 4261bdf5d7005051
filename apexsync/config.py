"""Configuration for the Apex → InfluxDB logger"""

import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

# Load environment variables from .env file
_repo_root = Path(__file__).parent.parent.resolve()
_env_file = _repo_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/apexsync.log")

# Debug
DEBUG = os.getenv("DEBUG", "false").lower() == "true"


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable configuration."""


class ApexSettings(BaseModel):
    host: str
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_s: float = 30.0
    # Hours east of UTC. None means "learn it from the controller".
    timezone_offset: Optional[float] = None


class InfluxSettings(BaseModel):
    host: str = "http://localhost:8181"
    token: Optional[str] = None
    database: str = "aquarium"


class SyncSettings(BaseModel):
    """Window, chunk and throttling parameters for the sync engine."""

    poll_interval_s: float = 300.0

    # Historical scan (controller side)
    scan_days: int = Field(60, ge=1)
    scan_chunk_days: int = Field(3, ge=1)

    # Chunked store queries (scan ceiling fallback)
    store_chunk_days: int = Field(7, ge=1)
    store_lookback_days: int = Field(90, ge=1)
    store_try_unbounded_first: bool = True
    store_fallback_on_unknown_errors: bool = False
    scan_limit_patterns: list[str] = Field(
        default_factory=lambda: ["file limit", "parquet files"]
    )

    # Startup backfill
    backfill_days: int = Field(1, ge=1)

    # Write throttling
    write_batch_size: int = Field(500, ge=1)
    write_batch_delay_s: float = Field(0.1, ge=0)
    write_chunk_delay_s: float = Field(2.0, ge=0)

    force_full_sync: bool = False
    reconcile_on_startup: bool = True
    up_to_date_tolerance_s: float = Field(60.0, ge=0)


class AppConfig(BaseModel):
    apex: ApexSettings
    influx: InfluxSettings = Field(default_factory=InfluxSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name, "").strip()
    return value or None


def _number(env: Mapping[str, str], name: str, default: float, cast=float):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from None


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build the application configuration from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ`` (after ``.env``
            has been loaded).

    Raises:
        ConfigError: if ``APEX_HOST`` is missing or a value is malformed or out of range.
    """
    if env is None:
        env = os.environ

    try:
        return _build_config(env)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _build_config(env: Mapping[str, str]) -> AppConfig:
    apex = ApexSettings(
        host=_require(env, "APEX_HOST"),
        username=_optional(env, "APEX_USERNAME"),
        password=_optional(env, "APEX_PASSWORD"),
        timeout_s=_number(env, "APEX_TIMEOUT_S", 30.0),
        timezone_offset=_number(env, "APEX_TIMEZONE_OFFSET", None),
    )

    influx = InfluxSettings(
        host=_optional(env, "INFLUX_HOST") or "http://localhost:8181",
        token=_optional(env, "INFLUX_TOKEN"),
        database=_optional(env, "INFLUX_DATABASE") or "aquarium",
    )

    patterns = _optional(env, "STORE_SCAN_LIMIT_PATTERNS")
    sync_kwargs = {}
    if patterns:
        sync_kwargs["scan_limit_patterns"] = [
            p.strip().lower() for p in patterns.split(",") if p.strip()
        ]

    sync = SyncSettings(
        poll_interval_s=_number(env, "POLL_INTERVAL_S", 300.0),
        scan_days=_number(env, "SCAN_DAYS", 60, int),
        scan_chunk_days=_number(env, "SCAN_CHUNK_DAYS", 3, int),
        store_chunk_days=_number(env, "STORE_CHUNK_DAYS", 7, int),
        store_lookback_days=_number(env, "STORE_LOOKBACK_DAYS", 90, int),
        store_fallback_on_unknown_errors=_flag(env, "STORE_FALLBACK_ON_UNKNOWN_ERRORS", False),
        backfill_days=_number(env, "BACKFILL_DAYS", 1, int),
        write_batch_size=_number(env, "WRITE_BATCH_SIZE", 500, int),
        write_batch_delay_s=_number(env, "WRITE_BATCH_DELAY_MS", 100.0) / 1000,
        write_chunk_delay_s=_number(env, "WRITE_CHUNK_DELAY_MS", 2000.0) / 1000,
        force_full_sync=_flag(env, "FORCE_FULL_SYNC", False),
        reconcile_on_startup=_flag(env, "RECONCILE_ON_STARTUP", True),
        up_to_date_tolerance_s=_number(env, "SYNC_TOLERANCE_S", 60.0),
        **sync_kwargs,
    )

    return AppConfig(apex=apex, influx=influx, sync=sync)
