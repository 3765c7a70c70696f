from typing import Any, List

from db.manager import DatabaseManager
from db.repository import PersistRepository, SettingRepository
from persist_refresh.core.settings import (
    DEFAULT_REFRESH_INTERVAL_HOURS,
    REFRESH_INTERVAL_SETTING,
    validate_interval_hours,
)
from persist_refresh.scheduler.schedules import (
    DEFAULT_MISFIRE_GRACE_SECONDS,
    database_trigger,
    database_trigger_key,
    individual_trigger,
    is_database_trigger_key,
    the_id,
)
from persist_refresh.scheduler.store import TriggerStore
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)


class ReconciliationController:
    """
    Keeps the trigger store in line with database configuration.

    ``reconcile_all`` tears down every periodic refresh trigger and rebuilds one
    per persistence-enabled database; the other operations add or remove a
    single trigger at runtime.
    """

    def __init__(
        self,
        store: TriggerStore,
        db: DatabaseManager,
        *,
        timezone: str = "UTC",
        misfire_grace_seconds: int = DEFAULT_MISFIRE_GRACE_SECONDS,
        default_interval_hours: int = DEFAULT_REFRESH_INTERVAL_HOURS,
    ):
        self.store = store
        self.db = db
        self.timezone = timezone
        self.misfire_grace_seconds = misfire_grace_seconds
        self.default_interval_hours = validate_interval_hours(default_interval_hours)

    async def refresh_interval_hours(self) -> int:
        async with self.db.session_factory() as session:
            value = await SettingRepository(session).get(REFRESH_INTERVAL_SETTING)
        if value is None:
            return self.default_interval_hours
        return validate_interval_hours(value)

    def schedule_database(self, database: Any, interval_hours: int) -> bool:
        """Schedule a database for persistence refreshing. Returns False if it already was."""
        spec = database_trigger(
            database,
            interval_hours,
            timezone=self.timezone,
            misfire_grace_seconds=self.misfire_grace_seconds,
        )
        log.info(f"Scheduling persistence refreshes for database {the_id(database)}: trigger: {spec.key}")
        if not self.store.add_trigger(spec):
            log.info(f"Persistence already present for database {the_id(database)}: trigger: {spec.key}")
            return False
        return True

    def unschedule_database(self, database: Any) -> bool:
        """
        Stop refreshing tables for a given database. Tables are left over and up
        to the caller to clean up.
        """
        key = database_trigger_key(database)
        removed = self.store.delete_trigger(key)
        if removed:
            log.info(f"Unscheduled persistence refreshes for database {the_id(database)}: trigger: {key}")
        else:
            log.info(f"No persistence refresh trigger for database {the_id(database)}")
        return removed

    def schedule_individual(self, persisted_info: Any) -> bool:
        """
        Schedule an immediate refresh of one persisted model. Goes through the trigger
        store so it shares the per-trigger locking and task history of periodic refreshes.
        """
        spec = individual_trigger(persisted_info, timezone=self.timezone)
        log.info(f"Scheduling refresh for persisted-info {the_id(persisted_info)}: trigger: {spec.key}")
        if not self.store.add_trigger(spec):
            log.info(f"Refresh already pending for persisted-info {the_id(persisted_info)}")
            return False
        return True

    def unschedule_all(self) -> int:
        """Unschedule all periodic database refresh triggers. Pending individual refreshes are kept."""
        keys = [key for key in self.store.trigger_keys() if is_database_trigger_key(key)]
        return sum(1 for key in keys if self.store.delete_trigger(key))

    async def reconcile_all(self) -> List[str]:
        """
        Reschedule refresh for all enabled databases. Removes all existing database
        triggers, then schedules one per database with persist-models-enabled at the
        configured refresh interval. Returns the resulting database trigger keys.
        """
        async with self.db.session_factory() as session:
            databases = await PersistRepository(session).list_persistence_enabled()
        interval_hours = await self.refresh_interval_hours()

        removed = self.unschedule_all()
        for database in databases:
            self.schedule_database(database, interval_hours)

        keys = [key for key in self.store.trigger_keys() if is_database_trigger_key(key)]
        log.info(
            f"Reconciled persistence triggers: removed {removed}, scheduled {len(keys)} "
            f"at {interval_hours}h interval."
        )
        return keys

    async def set_refresh_interval(self, hours: int) -> List[str]:
        """Store a new global refresh interval and rebuild the triggers with it."""
        hours = validate_interval_hours(hours)
        async with self.db.session_factory() as session:
            await SettingRepository(session).set(REFRESH_INTERVAL_SETTING, hours)
        return await self.reconcile_all()
