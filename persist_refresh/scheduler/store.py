"""
Durable trigger store for persisted-model refreshes, backed by APScheduler.

Each trigger is an APScheduler job running :func:`run_persistence_job` with the
trigger's payload. Jobs are registered with ``max_instances=1``: a trigger that
fires while its previous run is still going is skipped, while different
triggers (different databases, or individual refreshes) run side by side.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import uuid4

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    JobEvent,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.job import Job
from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from persist_refresh.core.errors import SchedulerStateError
from persist_refresh.scheduler.jobs import JobExecutor, bind_executor, run_persistence_job, unbind_executor
from persist_refresh.scheduler.schedules import TriggerSpec, is_refresh_trigger_key
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)

JOBSTORE_TABLE = "persist_refresh_triggers"
DURABLE_STORE_NAME = "default"
STORE_KWARG = "store"


class TriggerStore:
    """
    Lifetime-scoped scheduler service: construct, ``start()``, and ``shutdown()``.

    Every trigger carries the store's ``name`` so a fire reaches the executor this
    store bound, even with several stores in one process. Durable stores default to
    a fixed name so triggers reloaded after a restart still find their executor;
    in-memory stores get a unique one.
    """

    def __init__(self, *, jobstore_url: Optional[str] = None, timezone: str = "UTC", name: Optional[str] = None):
        if jobstore_url:
            jobstore = SQLAlchemyJobStore(url=jobstore_url, tablename=JOBSTORE_TABLE)
        else:
            jobstore = MemoryJobStore()
        self.durable = bool(jobstore_url)
        self.name = name or (DURABLE_STORE_NAME if self.durable else f"memory-{uuid4().hex[:12]}")
        self._executor: Optional[JobExecutor] = None
        self._scheduler = AsyncIOScheduler(
            jobstores={"default": jobstore},
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1},
            timezone=timezone,
        )
        self._scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_MAX_INSTANCES | EVENT_JOB_MISSED | EVENT_JOB_ERROR,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self, executor: JobExecutor, *, paused: bool = False):
        """Bind ``executor`` for fired triggers and start the scheduler. Must run inside the event loop."""
        if self.running:
            return
        bind_executor(self.name, executor)
        self._executor = executor
        self._scheduler.start(paused=paused)
        log.info(f"Trigger store {self.name} started ({'durable' if self.durable else 'in-memory'}{', paused' if paused else ''}).")

    def shutdown(self, wait: bool = True):
        if self.running:
            self._scheduler.shutdown(wait=wait)
            log.info("Trigger store stopped.")
        if self._executor is not None:
            unbind_executor(self.name, self._executor)
            self._executor = None

    def _ensure_running(self):
        if not self.running:
            raise SchedulerStateError("Trigger store is not running; call start() first")

    def add_trigger(self, spec: TriggerSpec) -> bool:
        """
        Registers a trigger. Returns False when a trigger with the same key already exists.
        """
        self._ensure_running()
        try:
            self._scheduler.add_job(
                run_persistence_job,
                trigger=spec.schedule,
                id=spec.key,
                name=spec.description,
                kwargs={**spec.payload.to_kwargs(), STORE_KWARG: self.name},
                max_instances=1,
                coalesce=True,
                misfire_grace_time=spec.misfire_grace_time,
                replace_existing=False,
            )
        except ConflictingIdError:
            return False
        return True

    def delete_trigger(self, key: str) -> bool:
        """
        Removes a trigger. Returns False when no such trigger exists.
        """
        self._ensure_running()
        try:
            self._scheduler.remove_job(key)
        except JobLookupError:
            return False
        return True

    def get_trigger(self, key: str) -> Optional[Job]:
        return self._scheduler.get_job(key)

    def trigger_keys(self) -> List[str]:
        """Keys of every trigger registered for the refresh job."""
        return sorted(job.id for job in self._scheduler.get_jobs() if is_refresh_trigger_key(job.id))

    def job_info(self) -> List[Dict[str, Any]]:
        info = []
        for job in self._scheduler.get_jobs():
            if not is_refresh_trigger_key(job.id):
                continue
            info.append({
                "key": job.id,
                "description": job.name,
                "payload": {k: v for k, v in job.kwargs.items() if k != STORE_KWARG},
                "schedule": str(job.trigger),
                "next_fire_time": getattr(job, "next_run_time", None),
            })
        return sorted(info, key=lambda item: item["key"])

    def _on_job_event(self, event: JobEvent):
        if event.code == EVENT_JOB_MAX_INSTANCES:
            log.info(f"Skipping fire of {event.job_id}: previous run still in progress")
        elif event.code == EVENT_JOB_MISSED:
            log.info(f"Missed fire of {event.job_id} at {getattr(event, 'scheduled_run_time', None)}; not catching up")
        elif event.code == EVENT_JOB_ERROR:
            exception = getattr(event, "exception", None)
            log.opt(exception=exception).error(f"Refresh job {event.job_id} crashed: {exception}")
