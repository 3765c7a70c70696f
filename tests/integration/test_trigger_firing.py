import asyncio
from datetime import datetime, timezone

import pytest
from loguru import logger

from db.models import STATE_PERSISTED
from db.repository import TaskHistoryRepository
from persist_refresh.core.errors import SchedulerStateError
from persist_refresh.refresh.history import TASK_REFRESH
from persist_refresh.refresh.refresher import Refresher
from persist_refresh.refresh.tasks import RefreshOrchestrator
from persist_refresh.scheduler.jobs import JobExecutor
from persist_refresh.scheduler.reconcile import ReconciliationController
from persist_refresh.scheduler.schedules import database_trigger_key
from persist_refresh.scheduler.store import TriggerStore


class SlowRefresher(Refresher):
    """Tracks how many refreshes run at once."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.refreshed = []
        self.active = 0
        self.peak = 0
        self.started = asyncio.Event()

    async def refresh(self, database, persisted_info):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.set()
        try:
            await asyncio.sleep(self.delay)
            self.refreshed.append(persisted_info.id)
        finally:
            self.active -= 1

    async def unpersist(self, database, persisted_info):
        return True


def _live_store(db, refresher, **kwargs):
    store = TriggerStore(**kwargs)
    store.start(JobExecutor(RefreshOrchestrator(db, refresher, settle_seconds=0)))
    return store


def _fire_now(store, key):
    store.get_trigger(key).modify(next_run_time=datetime.now(timezone.utc))


async def _history(db):
    async with db.session_factory() as session:
        return await TaskHistoryRepository(session).recent()


async def _wait_for_history(db, timeout: float = 5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await _history(db):
        assert loop.time() < deadline, "refresh job never recorded history"
        await asyncio.sleep(0.02)
    # let the job finish its prune sweep
    await asyncio.sleep(0.2)


async def test_refiring_a_running_trigger_is_skipped(db, make_database, make_persisted):
    database = await make_database()
    persisted = await make_persisted(database.id, STATE_PERSISTED, card_id=1)
    refresher = SlowRefresher(delay=0.5)
    key = database_trigger_key(database)
    messages = []
    sink = logger.add(messages.append, format="{message}")
    store = _live_store(db, refresher)
    try:
        ReconciliationController(store, db).schedule_database(database, 6)
        _fire_now(store, key)
        await asyncio.wait_for(refresher.started.wait(), timeout=5)
        _fire_now(store, key)
        await _wait_for_history(db)
    finally:
        store.shutdown(wait=False)
        logger.remove(sink)

    assert refresher.peak == 1
    assert refresher.refreshed == [persisted.id]
    history = await _history(db)
    assert [row.task for row in history] == [TASK_REFRESH]
    assert history[0].db_id == database.id
    assert history[0].task_details == {"success": 1, "error": 0}
    assert any("previous run still in progress" in message for message in messages)


async def test_each_store_dispatches_to_its_own_executor(db, make_database, make_persisted):
    database = await make_database()
    persisted = await make_persisted(database.id, STATE_PERSISTED, card_id=1)
    ours, theirs = SlowRefresher(), SlowRefresher()
    store_a = _live_store(db, ours)
    store_b = TriggerStore()
    store_b.start(JobExecutor(RefreshOrchestrator(db, theirs, settle_seconds=0)), paused=True)
    try:
        ReconciliationController(store_a, db).schedule_database(database, 6)
        store_b.shutdown(wait=False)
        _fire_now(store_a, database_trigger_key(database))
        await _wait_for_history(db)
    finally:
        store_a.shutdown(wait=False)
        store_b.shutdown(wait=False)

    assert ours.refreshed == [persisted.id]
    assert theirs.refreshed == []


async def test_stores_sharing_a_name_refuse_a_second_executor(db):
    first = _live_store(db, SlowRefresher(), name="shared")
    second = TriggerStore(name="shared")
    try:
        with pytest.raises(SchedulerStateError):
            second.start(JobExecutor(RefreshOrchestrator(db, SlowRefresher(), settle_seconds=0)))
        assert not second.running
    finally:
        second.shutdown(wait=False)
        first.shutdown(wait=False)
