from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

_MIN_DAY_CHECK_SECONDS = 15
_MAX_DAY_CHECK_SECONDS = 60


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/streakflow.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - APP_TIMEZONE: IANA timezone used to derive the local day key (default: system local time)
    - DAY_CHECK_INTERVAL_SECONDS: day-rollover check period, clamped to 15..60 (default: 30)
    - MAX_STREAK_WALK_DAYS: safety bound for the backward streak walk (default: 3650)
    - NOTIFICATION_BUFFER_SIZE: transient notifications kept per session (default: 20)
    - LOG_LEVEL: logging level name (default: INFO)
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    app_timezone: Optional[str]
    day_check_interval_seconds: int
    max_streak_walk_days: int
    notification_buffer_size: int
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 1) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    if parsed < minimum:
        return default
    return parsed


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    sqlite_path = _get_env("SQLITE_DB_PATH", "./data/streakflow.db").strip()
    origins = _parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*"))
    timezone = os.getenv("APP_TIMEZONE", "").strip() or None

    interval = _parse_int(_get_env("DAY_CHECK_INTERVAL_SECONDS", "30"), 30)
    interval = min(max(interval, _MIN_DAY_CHECK_SECONDS), _MAX_DAY_CHECK_SECONDS)

    log_level = _get_env("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
        log_level = "INFO"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=sqlite_path,
        cors_allow_origins=origins,
        app_timezone=timezone,
        day_check_interval_seconds=interval,
        max_streak_walk_days=_parse_int(_get_env("MAX_STREAK_WALK_DAYS", "3650"), 3650),
        notification_buffer_size=_parse_int(_get_env("NOTIFICATION_BUFFER_SIZE", "20"), 20),
        log_level=log_level,
    )
