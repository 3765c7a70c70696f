"""Trigger store, job executor and reconciliation for persisted-model refreshes."""

from .jobs import JobExecutor, run_persistence_job
from .reconcile import ReconciliationController
from .schedules import (
    PERSISTENCE_JOB_KEY,
    cron_schedule,
    database_trigger_key,
    individual_trigger_key,
)
from .store import TriggerStore

__all__ = [
    "JobExecutor",
    "PERSISTENCE_JOB_KEY",
    "ReconciliationController",
    "TriggerStore",
    "cron_schedule",
    "database_trigger_key",
    "individual_trigger_key",
    "run_persistence_job",
]
