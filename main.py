#!/usr/bin/env python3
"""
Persisted-Model Refresh Scheduler - Main Entry Point
====================================================

Keeps persisted model tables fresh on a schedule and tears down tables marked deletable.

Usage:
    python main.py --mode scheduler                # Run the refresh scheduler
    python main.py --mode reconcile                # Rebuild refresh triggers from database configuration
    python main.py --mode init-db                  # Create application tables
    python main.py --mode refresh --database 3     # Refresh one database now, bypassing the scheduler
    python main.py --mode refresh --persisted 42   # Refresh one persisted model now
    python main.py --mode history                  # Show recent task history
"""

import argparse
import asyncio
import signal
from typing import Optional

from dotenv import load_dotenv

from db.manager import DatabaseManager
from db.repository import TaskHistoryRepository
from persist_refresh.core.config import Config
from persist_refresh.core.settings import SchedulerSettings, get_settings
from persist_refresh.refresh.refresher import DispatchingRefresher
from persist_refresh.refresh.tasks import RefreshOrchestrator
from persist_refresh.scheduler.jobs import JobExecutor
from persist_refresh.scheduler.reconcile import ReconciliationController
from persist_refresh.scheduler.store import TriggerStore
from persist_refresh.utils.logger import get_logger, setup_logging

log = get_logger(__name__)


def build_orchestrator(db: DatabaseManager, settings: SchedulerSettings) -> RefreshOrchestrator:
    refresher = DispatchingRefresher.from_config(Config.get("refresher", "backends", default={}))
    return RefreshOrchestrator(db, refresher, settle_seconds=settings.settle_seconds)


def build_controller(store: TriggerStore, db: DatabaseManager, settings: SchedulerSettings) -> ReconciliationController:
    return ReconciliationController(
        store,
        db,
        timezone=settings.timezone,
        misfire_grace_seconds=settings.misfire_grace_seconds,
        default_interval_hours=settings.default_interval_hours,
    )


async def _wait_for_stop():
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    await stop.wait()


async def run_scheduler(settings: SchedulerSettings) -> int:
    db = DatabaseManager(settings.require_database_url())
    if not await db.check_connection():
        log.critical("Could not connect to database. Scheduler exiting.")
        await db.close()
        return 1

    if not settings.jobstore_url:
        log.warning("JOBSTORE_URL not set; triggers will not survive a restart.")

    store = TriggerStore(jobstore_url=settings.jobstore_url, timezone=settings.timezone)
    store.start(JobExecutor(build_orchestrator(db, settings)))
    try:
        keys = await build_controller(store, db, settings).reconcile_all()
        log.info(f"Scheduler started with {len(keys)} database refresh trigger(s).")
        await _wait_for_stop()
    finally:
        log.info("Scheduler shutting down...")
        store.shutdown()
        await db.close()
    return 0


async def run_reconcile(settings: SchedulerSettings) -> int:
    db = DatabaseManager(settings.require_database_url())
    store = TriggerStore(jobstore_url=settings.jobstore_url, timezone=settings.timezone)
    store.start(JobExecutor(build_orchestrator(db, settings)), paused=True)
    try:
        keys = await build_controller(store, db, settings).reconcile_all()
        for info in store.job_info():
            print(f"{info['key']:<60} {info['schedule']:<40} next: {info['next_fire_time']}")
        log.info(f"Reconciled {len(keys)} database refresh trigger(s).")
    finally:
        store.shutdown()
        await db.close()
    return 0


async def run_init_db(settings: SchedulerSettings) -> int:
    db = DatabaseManager(settings.require_database_url())
    try:
        await db.create_all()
    finally:
        await db.close()
    return 0


async def run_refresh(settings: SchedulerSettings, database_id: Optional[int], persisted_id: Optional[int]) -> int:
    db = DatabaseManager(settings.require_database_url())
    orchestrator = build_orchestrator(db, settings)
    try:
        if database_id is not None:
            stats = await orchestrator.refresh_tables(database_id)
        else:
            stats = await orchestrator.refresh_individual(persisted_id)
    finally:
        await db.close()

    if stats is None:
        print("Nothing refreshed.")
        return 1
    print(f"Refreshed: {stats.success} succeeded, {stats.error} failed")
    return 0 if stats.error == 0 else 2


async def run_history(settings: SchedulerSettings, limit: int) -> int:
    db = DatabaseManager(settings.require_database_url())
    try:
        async with db.session_factory() as session:
            rows = await TaskHistoryRepository(session).recent(limit=limit)
    finally:
        await db.close()

    for row in rows:
        details = row.task_details or {}
        db_label = "-" if row.db_id is None else str(row.db_id)
        print(
            f"{row.started_at:%Y-%m-%d %H:%M:%S}  {row.task:<28} db={db_label:<5} "
            f"{row.duration:>8} ms  success={details.get('success', 0)} error={details.get('error', 0)}"
        )
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Persisted model refresh scheduler")
    parser.add_argument(
        "--mode",
        choices=["scheduler", "reconcile", "init-db", "refresh", "history"],
        default="scheduler",
        help="What to run (default: scheduler)",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--database", type=int, help="Database id to refresh (refresh mode)")
    target.add_argument("--persisted", type=int, help="Persisted-info id to refresh (refresh mode)")
    parser.add_argument("--limit", type=int, default=20, help="Rows to show (history mode)")
    args = parser.parse_args()
    if args.mode == "refresh" and args.database is None and args.persisted is None:
        parser.error("--mode refresh needs --database or --persisted")
    return args


def main() -> int:
    load_dotenv()
    args = parse_args()
    setup_logging()
    settings = get_settings()

    if args.mode == "scheduler":
        log.info("=== Persisted Model Refresh Scheduler Starting ===")
        return asyncio.run(run_scheduler(settings))
    if args.mode == "reconcile":
        return asyncio.run(run_reconcile(settings))
    if args.mode == "init-db":
        return asyncio.run(run_init_db(settings))
    if args.mode == "refresh":
        return asyncio.run(run_refresh(settings, args.database, args.persisted))
    return asyncio.run(run_history(settings, args.limit))


if __name__ == "__main__":
    raise SystemExit(main())
