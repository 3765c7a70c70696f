import asyncio
from typing import Optional

from db.manager import DatabaseManager
from db.models import Database, PersistedInfo, utc_now
from db.repository import PersistRepository
from models.stats import RefreshStats
from persist_refresh.core.errors import RefreshError
from persist_refresh.refresh.accumulate import accumulate
from persist_refresh.refresh.history import (
    TASK_REFRESH,
    TASK_REFRESH_INDIVIDUAL,
    TASK_UNPERSIST,
    HistoryRecorder,
)
from persist_refresh.refresh.refresher import Refresher
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)

DEFAULT_SETTLE_SECONDS = 5.0


def _describe(persisted_info: PersistedInfo) -> str:
    return f"persisted model with card-id {persisted_info.card_id} (persisted-info {persisted_info.id})"


class RefreshOrchestrator:
    """
    Runs the refresh work behind each trigger: a batch refresh for one database,
    the global prune of deletable tables, and on-demand refresh of a single model.
    """

    def __init__(
        self,
        db: DatabaseManager,
        refresher: Refresher,
        *,
        history: Optional[HistoryRecorder] = None,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    ):
        self.db = db
        self.refresher = refresher
        self.history = history or HistoryRecorder(db.session_factory)
        self.settle_seconds = settle_seconds

    async def refresh_tables(self, database_id: int) -> Optional[RefreshStats]:
        """
        Refreshes every persisted table of a database that is in a refreshable state,
        records the batch in task history, then prunes deletable tables across all databases.
        Returns None when the database no longer exists.
        """
        log.info(f"Starting persisted model refresh task for Database {database_id}.")
        async with self.db.session_factory() as session:
            repo = PersistRepository(session)
            database = await repo.get_database(database_id)
            persisted = await repo.list_refreshable(database_id) if database is not None else []

        stats = None
        if database is None:
            log.info(f"Database {database_id} no longer exists; skipping refresh.")
        else:
            started_at = utc_now()
            stats = await accumulate(
                persisted,
                lambda p: self.refresher.refresh(database, p),
                describe=_describe,
                verb="refreshing",
            )
            ended_at = utc_now()
            await self.history.record(
                TASK_REFRESH,
                db_id=database_id,
                started_at=started_at,
                ended_at=ended_at,
                stats=stats,
            )
            log.info(
                f"Finished persisted model refresh task for Database {database_id}: "
                f"{stats.success} succeeded, {stats.error} failed."
            )

        # look for any stragglers that we can try to delete
        await self.prune_deletable()
        return stats

    async def prune_deletable(self) -> Optional[RefreshStats]:
        """
        Unpersists every table marked deletable, across all databases.
        Empty sweeps record nothing and return None.
        """
        async with self.db.session_factory() as session:
            repo = PersistRepository(session)
            deletable = await repo.list_deletable()
            if not deletable:
                return None
            databases = await repo.get_databases(p.database_id for p in deletable)

        async def unpersist(persisted_info: PersistedInfo):
            database = databases.get(persisted_info.database_id)
            if database is None:
                raise RefreshError(
                    f"Database {persisted_info.database_id} not found",
                    database_id=persisted_info.database_id,
                    persisted_id=persisted_info.id,
                    operation="unpersist",
                )
            log.info(f"Unpersisting model with card-id {persisted_info.card_id}")
            return await self.refresher.unpersist(database, persisted_info)

        started_at = utc_now()
        stats = await accumulate(deletable, unpersist, describe=_describe, verb="unpersisting")
        ended_at = utc_now()
        await self.history.record(
            TASK_UNPERSIST,
            started_at=started_at,
            ended_at=ended_at,
            stats=stats,
        )
        log.info(f"Unpersist sweep finished: {stats.success} succeeded, {stats.error} failed.")
        return stats

    async def refresh_individual(self, persisted_id: int) -> Optional[RefreshStats]:
        """
        Refreshes a single persisted model. A model or database deleted since the
        trigger was scheduled is a silent no-op.
        """
        log.info(f"Attempting to refresh individual for persisted-info {persisted_id}.")
        async with self.db.session_factory() as session:
            repo = PersistRepository(session)
            persisted_info = await repo.get_persisted_info(persisted_id)
            database = await repo.get_database(persisted_info.database_id) if persisted_info else None

        if persisted_info is None or database is None:
            log.info(f"Persisted-info {persisted_id} or its database no longer exists; nothing to refresh.")
            return None

        started_at = utc_now()
        stats = await accumulate(
            [persisted_info],
            lambda p: self._refresh_and_settle(database, p),
            describe=_describe,
            verb="refreshing",
        )
        ended_at = utc_now()
        await self.history.record(
            TASK_REFRESH_INDIVIDUAL,
            db_id=database.id,
            started_at=started_at,
            ended_at=ended_at,
            stats=stats,
        )
        log.info(
            f"Finished updated model-id {persisted_info.card_id} from persisted-info {persisted_info.id}. "
            f"{'Success' if stats.success else 'Failed'}"
        )
        return stats

    async def _refresh_and_settle(self, database: Database, persisted_info: PersistedInfo):
        result = await self.refresher.refresh(database, persisted_info)
        if result is not False and self.settle_seconds > 0:
            await self._settle()
        return result

    async def _settle(self):
        # give query caches a moment to see the new table before the job completes
        await asyncio.sleep(self.settle_seconds)
