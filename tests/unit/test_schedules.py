from datetime import datetime, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from models.payload import PAYLOAD_DATABASE, PAYLOAD_INDIVIDUAL, JobPayload
from persist_refresh.core.errors import ConfigError
from persist_refresh.scheduler.schedules import (
    PERSISTENCE_JOB_KEY,
    cron_schedule,
    database_trigger,
    database_trigger_key,
    individual_trigger,
    individual_trigger_key,
    is_database_trigger_key,
    is_refresh_trigger_key,
)


class Record:
    def __init__(self, id, card_id=None):
        self.id = id
        self.card_id = card_id


def test_cron_schedule_fires_on_the_hour_every_n_hours():
    trigger = cron_schedule(8)
    now = datetime(2024, 1, 1, 1, 30, tzinfo=timezone.utc)

    first = trigger.get_next_fire_time(None, now)
    second = trigger.get_next_fire_time(first, first.replace(minute=1))

    assert (first.hour, first.minute, first.second) == (8, 0, 0)
    assert second.hour == 16


def test_cron_schedule_daily_is_anchored_at_midnight():
    trigger = cron_schedule(24)
    now = datetime(2024, 1, 1, 13, 45, tzinfo=timezone.utc)

    fire = trigger.get_next_fire_time(None, now)

    assert fire == datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)


def test_cron_schedule_uses_reference_timezone():
    trigger = cron_schedule(24, timezone="Asia/Kolkata")
    fire = trigger.get_next_fire_time(None, datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))

    assert (fire.hour, fire.minute) == (0, 0)
    assert fire.utcoffset().total_seconds() == 5.5 * 3600


@pytest.mark.parametrize("hours", [0, -1, 25, "abc", 1.5])
def test_cron_schedule_rejects_invalid_intervals(hours):
    with pytest.raises(ConfigError):
        cron_schedule(hours)


def test_trigger_keys_are_deterministic_per_target():
    assert database_trigger_key(Record(3)) == database_trigger_key(3) == f"{PERSISTENCE_JOB_KEY}.trigger.3"
    assert individual_trigger_key(Record(9)) == f"{PERSISTENCE_JOB_KEY}.individual.trigger.9"
    assert is_database_trigger_key(database_trigger_key(3))
    assert not is_database_trigger_key(individual_trigger_key(3))
    assert is_refresh_trigger_key(individual_trigger_key(3))
    assert not is_refresh_trigger_key("some.other.job")


def test_database_trigger_spec():
    spec = database_trigger(Record(4), 6, misfire_grace_seconds=30)

    assert spec.key == database_trigger_key(4)
    assert spec.payload == JobPayload(type=PAYLOAD_DATABASE, target_id=4)
    assert isinstance(spec.schedule, CronTrigger)
    assert spec.misfire_grace_time == 30
    assert "database 4" in spec.description


def test_individual_trigger_fires_once_without_misfire_limit():
    spec = individual_trigger(Record(11, card_id=70))

    assert spec.key == individual_trigger_key(11)
    assert spec.payload.to_kwargs() == {"type": PAYLOAD_INDIVIDUAL, "target_id": 11}
    assert isinstance(spec.schedule, DateTrigger)
    assert spec.misfire_grace_time is None
    assert "Refresh model 70" in spec.description


def test_payload_from_kwargs_tolerates_bad_input():
    assert JobPayload.from_kwargs({"type": "database", "target_id": "5"}) == JobPayload("database", 5)

    junk = JobPayload.from_kwargs({"type": "database", "target_id": "five"})
    assert junk.target_id is None
    assert not junk.is_known

    unknown = JobPayload.from_kwargs({"type": "table", "target_id": 1})
    assert not unknown.is_known
