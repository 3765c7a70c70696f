"""Refresh, unpersist and history helpers run by the refresh job."""

from .accumulate import accumulate
from .history import TASK_REFRESH, TASK_REFRESH_INDIVIDUAL, TASK_UNPERSIST, HistoryRecorder
from .refresher import DispatchingRefresher, Refresher
from .tasks import RefreshOrchestrator

__all__ = [
    "accumulate",
    "DispatchingRefresher",
    "HistoryRecorder",
    "Refresher",
    "RefreshOrchestrator",
    "TASK_REFRESH",
    "TASK_REFRESH_INDIVIDUAL",
    "TASK_UNPERSIST",
]
