"""Runtime settings for the refresh scheduler."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Mapping, Optional

from persist_refresh.core.config import Config
from persist_refresh.core.errors import ConfigError

REFRESH_INTERVAL_SETTING = "persisted-model-refresh-interval-hours"
DEFAULT_REFRESH_INTERVAL_HOURS = 6
MIN_REFRESH_INTERVAL_HOURS = 1
MAX_REFRESH_INTERVAL_HOURS = 24


def validate_interval_hours(hours: Any) -> int:
    """Coerce ``hours`` to an int and check it fits a whole-hour cron step."""
    try:
        value = int(hours)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Refresh interval must be a whole number of hours, got {hours!r}",
            key=REFRESH_INTERVAL_SETTING,
        ) from exc
    if value != hours and not isinstance(hours, str):
        raise ConfigError(
            f"Refresh interval must be a whole number of hours, got {hours!r}",
            key=REFRESH_INTERVAL_SETTING,
        )
    if not MIN_REFRESH_INTERVAL_HOURS <= value <= MAX_REFRESH_INTERVAL_HOURS:
        raise ConfigError(
            f"Refresh interval must be between {MIN_REFRESH_INTERVAL_HOURS} and "
            f"{MAX_REFRESH_INTERVAL_HOURS} hours, got {value}",
            key=REFRESH_INTERVAL_SETTING,
        )
    return value


class SchedulerSettings:
    """Container for runtime-tunable scheduler settings."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        if config is None:
            config = Config.load()
        scheduler_cfg = config.get("scheduler") or {}
        database_cfg = config.get("database") or {}

        self.database_url: str | None = os.getenv("DATABASE_URL") or database_cfg.get("url")
        self.jobstore_url: str | None = os.getenv("JOBSTORE_URL") or scheduler_cfg.get("jobstore_url")
        self.timezone: str = os.getenv("PERSIST_REFRESH_TIMEZONE") or scheduler_cfg.get("timezone", "UTC")
        self.default_interval_hours: int = validate_interval_hours(
            scheduler_cfg.get("refresh_interval_hours", DEFAULT_REFRESH_INTERVAL_HOURS)
        )
        self.misfire_grace_seconds: int = max(int(scheduler_cfg.get("misfire_grace_seconds", 60)), 1)
        self.settle_seconds: float = max(float(scheduler_cfg.get("settle_seconds", 5)), 0.0)

    def require_database_url(self) -> str:
        if not self.database_url:
            raise ConfigError("DATABASE_URL is required.", key="url", section="database")
        return self.database_url


@lru_cache(maxsize=1)
def get_settings() -> SchedulerSettings:
    """Return cached scheduler settings instance."""

    return SchedulerSettings()


__all__ = [
    "DEFAULT_REFRESH_INTERVAL_HOURS",
    "REFRESH_INTERVAL_SETTING",
    "SchedulerSettings",
    "get_settings",
    "validate_interval_hours",
]
