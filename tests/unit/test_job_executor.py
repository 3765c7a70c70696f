from unittest.mock import AsyncMock, MagicMock

import pytest

from models.stats import RefreshStats
from persist_refresh.core.errors import SchedulerStateError
from persist_refresh.scheduler import jobs
from persist_refresh.scheduler.jobs import JobExecutor, run_persistence_job

STORE = "unit-store"


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.refresh_tables = AsyncMock(return_value=RefreshStats(success=2))
    mock.refresh_individual = AsyncMock(return_value=RefreshStats(error=1))
    return mock


@pytest.fixture(autouse=True)
def unbound():
    jobs.unbind_executor(STORE)
    yield
    jobs.unbind_executor(STORE)


async def test_database_payload_runs_batch_refresh(orchestrator):
    stats = await JobExecutor(orchestrator).execute({"type": "database", "target_id": 3})

    orchestrator.refresh_tables.assert_awaited_once_with(3)
    orchestrator.refresh_individual.assert_not_called()
    assert stats.success == 2


async def test_individual_payload_runs_single_refresh(orchestrator):
    await JobExecutor(orchestrator).execute({"type": "individual", "target_id": "42"})

    orchestrator.refresh_individual.assert_awaited_once_with(42)
    orchestrator.refresh_tables.assert_not_called()


@pytest.mark.parametrize("payload", [
    {"type": "table", "target_id": 1},
    {"target_id": 1},
    {"type": "database"},
])
async def test_unknown_or_incomplete_payload_is_ignored(orchestrator, payload):
    assert await JobExecutor(orchestrator).execute(payload) is None

    orchestrator.refresh_tables.assert_not_called()
    orchestrator.refresh_individual.assert_not_called()


async def test_job_function_dispatches_to_executor_of_its_store(orchestrator):
    executor = JobExecutor(orchestrator)
    jobs.bind_executor(STORE, executor)

    await run_persistence_job(store=STORE, type="database", target_id=5)

    orchestrator.refresh_tables.assert_awaited_once_with(5)


async def test_job_function_for_unbound_store_is_dropped(orchestrator):
    jobs.bind_executor(STORE, JobExecutor(orchestrator))

    assert await run_persistence_job(store="other-store", type="database", target_id=5) is None
    assert await run_persistence_job(type="database", target_id=5) is None
    orchestrator.refresh_tables.assert_not_called()


def test_binding_a_second_executor_to_one_store_is_refused(orchestrator):
    current = JobExecutor(orchestrator)
    jobs.bind_executor(STORE, current)
    jobs.bind_executor(STORE, current)

    with pytest.raises(SchedulerStateError):
        jobs.bind_executor(STORE, JobExecutor(orchestrator))

    assert jobs.bound_executor(STORE) is current


def test_unbind_leaves_other_executor_bound(orchestrator):
    current, stale = JobExecutor(orchestrator), JobExecutor(orchestrator)
    jobs.bind_executor(STORE, current)

    jobs.unbind_executor(STORE, stale)

    assert jobs.bound_executor(STORE) is current
