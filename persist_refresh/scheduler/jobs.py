from typing import Any, Dict, Mapping, Optional

from models.payload import PAYLOAD_DATABASE, PAYLOAD_TYPES, JobPayload
from models.stats import RefreshStats
from persist_refresh.core.errors import SchedulerStateError
from persist_refresh.refresh.tasks import RefreshOrchestrator
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)


class JobExecutor:
    """
    Decodes a fired trigger's payload and dispatches it to the orchestrator.
    This function should contain no business logic beyond orchestration.
    """

    def __init__(self, orchestrator: RefreshOrchestrator):
        self.orchestrator = orchestrator

    async def execute(self, payload: Mapping[str, Any]) -> Optional[RefreshStats]:
        job = JobPayload.from_kwargs(payload)
        if not job.is_known:
            if job.type in PAYLOAD_TYPES:
                log.info(f"Payload {dict(payload)} has no target id; ignoring")
            else:
                log.info(f"Unknown payload type {job.type}")
            return None

        if job.type == PAYLOAD_DATABASE:
            return await self.orchestrator.refresh_tables(job.target_id)
        return await self.orchestrator.refresh_individual(job.target_id)


# The trigger store persists a reference to run_persistence_job, so each store
# binds its executor under its own name and stamps that name into the job kwargs.
_executors: Dict[str, JobExecutor] = {}


def bind_executor(store_name: str, executor: JobExecutor) -> None:
    current = _executors.get(store_name)
    if current is not None and current is not executor:
        raise SchedulerStateError(f"Trigger store {store_name!r} already has an executor bound")
    _executors[store_name] = executor


def unbind_executor(store_name: str, executor: Optional[JobExecutor] = None) -> None:
    if executor is None or _executors.get(store_name) is executor:
        _executors.pop(store_name, None)


def bound_executor(store_name: str) -> Optional[JobExecutor]:
    return _executors.get(store_name)


async def run_persistence_job(store: Optional[str] = None, **payload) -> Optional[RefreshStats]:
    """Entry point registered with every refresh trigger; ``store`` names the owning trigger store."""
    executor = _executors.get(store) if store is not None else None
    if executor is None:
        log.error(f"Refresh trigger fired with no executor bound for store {store!r}; payload {payload} dropped")
        return None
    return await executor.execute(payload)
