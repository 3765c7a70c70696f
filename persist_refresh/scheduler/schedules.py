"""Trigger keys, cron schedules and trigger definitions for the refresh job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from models.payload import JobPayload
from persist_refresh.core.settings import validate_interval_hours

PERSISTENCE_JOB_KEY = "persist_refresh.PersistenceRefresh"
DEFAULT_MISFIRE_GRACE_SECONDS = 60
DAILY_INTERVAL_HOURS = 24


def the_id(obj: Any) -> int:
    """Accept either a record with an ``id`` or a bare id."""
    return int(getattr(obj, "id", obj))


def database_trigger_key(database: Any) -> str:
    return f"{PERSISTENCE_JOB_KEY}.trigger.{the_id(database)}"


def individual_trigger_key(persisted_info: Any) -> str:
    return f"{PERSISTENCE_JOB_KEY}.individual.trigger.{the_id(persisted_info)}"


def is_refresh_trigger_key(key: str) -> bool:
    return key.startswith(f"{PERSISTENCE_JOB_KEY}.")


def is_database_trigger_key(key: str) -> bool:
    return key.startswith(f"{PERSISTENCE_JOB_KEY}.trigger.")


def cron_schedule(hours: int, timezone: str = "UTC") -> CronTrigger:
    """
    Fire at minute 0 of every ``hours``-th hour. A 24 hour interval fires daily
    at midnight in ``timezone`` so refresh times stay predictable.
    """
    hours = validate_interval_hours(hours)
    if hours == DAILY_INTERVAL_HOURS:
        return CronTrigger(hour=0, minute=0, second=0, timezone=timezone)
    return CronTrigger(hour=f"*/{hours}", minute=0, second=0, timezone=timezone)


@dataclass(slots=True)
class TriggerSpec:
    key: str
    description: str
    payload: JobPayload
    schedule: BaseTrigger
    # None lets a late fire run whenever the scheduler gets to it
    misfire_grace_time: Optional[int] = DEFAULT_MISFIRE_GRACE_SECONDS


def database_trigger(
    database: Any,
    interval_hours: int,
    *,
    timezone: str = "UTC",
    misfire_grace_seconds: int = DEFAULT_MISFIRE_GRACE_SECONDS,
) -> TriggerSpec:
    database_id = the_id(database)
    return TriggerSpec(
        key=database_trigger_key(database_id),
        description=f"Refresh models for database {database_id}",
        payload=JobPayload.for_database(database_id),
        schedule=cron_schedule(interval_hours, timezone),
        misfire_grace_time=misfire_grace_seconds,
    )


def individual_trigger(persisted_info: Any, *, timezone: str = "UTC") -> TriggerSpec:
    persisted_id = the_id(persisted_info)
    card_id = getattr(persisted_info, "card_id", None)
    description = (
        f"Refresh model {card_id}: persisted-info {persisted_id}"
        if card_id is not None
        else f"Refresh persisted-info {persisted_id}"
    )
    return TriggerSpec(
        key=individual_trigger_key(persisted_id),
        description=description,
        payload=JobPayload.for_individual(persisted_id),
        schedule=DateTrigger(timezone=timezone),
        misfire_grace_time=None,
    )


__all__ = [
    "PERSISTENCE_JOB_KEY",
    "TriggerSpec",
    "cron_schedule",
    "database_trigger",
    "database_trigger_key",
    "individual_trigger",
    "individual_trigger_key",
    "is_database_trigger_key",
    "is_refresh_trigger_key",
]
