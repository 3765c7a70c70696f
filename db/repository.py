from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import (
    REFRESHABLE_STATES,
    STATE_DELETABLE,
    Database,
    PersistedInfo,
    Setting,
    TaskHistory,
)
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)


class PersistRepository:
    """
    Read access to database configuration and persisted_info records.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_database(self, database_id: int) -> Optional[Database]:
        return await self.session.get(Database, database_id)

    async def get_databases(self, database_ids: Iterable[int]) -> Dict[int, Database]:
        """
        Fetches the given databases in one query, keyed by id.
        """
        ids = set(database_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Database).where(Database.id.in_(sorted(ids))))
        return {database.id: database for database in result.scalars()}

    async def list_databases(self) -> List[Database]:
        result = await self.session.execute(select(Database).order_by(Database.id))
        return list(result.scalars())

    async def list_persistence_enabled(self) -> List[Database]:
        """
        Databases whose options enable model persistence.
        Options are JSON, so the flag is checked in Python to stay dialect neutral.
        """
        return [database for database in await self.list_databases() if database.persist_models_enabled]

    async def get_persisted_info(self, persisted_id: int) -> Optional[PersistedInfo]:
        return await self.session.get(PersistedInfo, persisted_id)

    async def list_refreshable(self, database_id: int) -> List[PersistedInfo]:
        stmt = select(PersistedInfo).where(
            PersistedInfo.database_id == database_id,
            PersistedInfo.state.in_(sorted(REFRESHABLE_STATES))
        ).order_by(PersistedInfo.id)
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_deletable(self) -> List[PersistedInfo]:
        stmt = select(PersistedInfo).where(PersistedInfo.state == STATE_DELETABLE).order_by(PersistedInfo.id)
        result = await self.session.execute(stmt)
        return list(result.scalars())


class SettingRepository:
    """
    Key/value access to global settings.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        setting = await self.session.get(Setting, key)
        if setting is None or setting.value is None:
            return default
        return setting.value

    async def set(self, key: str, value: Any):
        setting = await self.session.get(Setting, key)
        if setting is None:
            self.session.add(Setting(key=key, value=str(value)))
        else:
            setting.value = str(value)
        await self.session.commit()
        log.info(f"Setting {key} updated to {value}")


class TaskHistoryRepository:
    """
    Append-only access to task_history.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(
        self,
        task: str,
        started_at: datetime,
        ended_at: datetime,
        duration_ms: int,
        task_details: Dict[str, Any],
        db_id: Optional[int] = None,
    ) -> TaskHistory:
        entry = TaskHistory(
            task=task,
            db_id=db_id,
            started_at=started_at,
            ended_at=ended_at,
            duration=duration_ms,
            task_details=task_details
        )
        self.session.add(entry)
        await self.session.commit()
        return entry

    async def recent(self, limit: int = 50, task: Optional[str] = None, db_id: Optional[int] = None) -> List[TaskHistory]:
        stmt = select(TaskHistory)
        if task is not None:
            stmt = stmt.where(TaskHistory.task == task)
        if db_id is not None:
            stmt = stmt.where(TaskHistory.db_id == db_id)
        stmt = stmt.order_by(TaskHistory.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars())
