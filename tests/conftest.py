from typing import Iterable, Optional

import pytest
from sqlalchemy import delete

from db.manager import DatabaseManager
from db.models import PERSIST_MODELS_ENABLED, Database, PersistedInfo
from persist_refresh.refresh.refresher import Refresher
from persist_refresh.refresh.tasks import RefreshOrchestrator
from persist_refresh.scheduler.jobs import JobExecutor
from persist_refresh.scheduler.reconcile import ReconciliationController
from persist_refresh.scheduler.store import TriggerStore


class FakeRefresher(Refresher):
    """Records calls; fails for the given persisted_info ids; unpersist deletes the row like a real backend."""

    def __init__(
        self,
        db: Optional[DatabaseManager] = None,
        fail_refresh: Iterable[int] = (),
        fail_unpersist: Iterable[int] = (),
    ):
        self.db = db
        self.fail_refresh = set(fail_refresh)
        self.fail_unpersist = set(fail_unpersist)
        self.refreshed = []
        self.unpersisted = []

    async def refresh(self, database, persisted_info):
        self.refreshed.append(persisted_info.id)
        if persisted_info.id in self.fail_refresh:
            raise RuntimeError(f"refresh failed for {persisted_info.id}")

    async def unpersist(self, database, persisted_info):
        self.unpersisted.append(persisted_info.id)
        if persisted_info.id in self.fail_unpersist:
            raise RuntimeError(f"unpersist failed for {persisted_info.id}")
        if self.db is not None:
            async with self.db.session_factory() as session:
                await session.execute(delete(PersistedInfo).where(PersistedInfo.id == persisted_info.id))
                await session.commit()


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def refresher(db):
    return FakeRefresher(db)


@pytest.fixture
def orchestrator(db, refresher):
    return RefreshOrchestrator(db, refresher, settle_seconds=0)


@pytest.fixture
async def store(orchestrator):
    """In-memory trigger store, started paused so nothing fires during a test."""
    trigger_store = TriggerStore()
    trigger_store.start(JobExecutor(orchestrator), paused=True)
    yield trigger_store
    trigger_store.shutdown(wait=False)


@pytest.fixture
def controller(store, db):
    return ReconciliationController(store, db, default_interval_hours=8)


@pytest.fixture
def make_database(db):
    async def _make(name: str = "warehouse", engine: str = "fake", enabled: bool = True) -> Database:
        async with db.session_factory() as session:
            database = Database(name=name, engine=engine, options={PERSIST_MODELS_ENABLED: enabled})
            session.add(database)
            await session.commit()
            return database

    return _make


@pytest.fixture
def make_persisted(db):
    async def _make(database_id: int, state: str, card_id: Optional[int] = None) -> PersistedInfo:
        async with db.session_factory() as session:
            persisted = PersistedInfo(
                database_id=database_id,
                card_id=card_id if card_id is not None else 0,
                table_name=f"model_{card_id}",
                state=state,
            )
            session.add(persisted)
            await session.commit()
            return persisted

    return _make
