"""Task history writer for refresh runs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from db.models import TaskHistory
from db.repository import TaskHistoryRepository
from models.stats import RefreshStats

TASK_REFRESH = "persist-refresh"
TASK_REFRESH_INDIVIDUAL = "persist-refresh-individual"
TASK_UNPERSIST = "unpersist-tables"


def duration_ms(started_at: datetime, ended_at: datetime) -> int:
    return int((ended_at - started_at).total_seconds() * 1000)


class HistoryRecorder:
    """Appends one task_history row per run, in its own session."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        task: str,
        *,
        started_at: datetime,
        ended_at: datetime,
        stats: RefreshStats,
        db_id: Optional[int] = None,
    ) -> TaskHistory:
        async with self.session_factory() as session:
            return await TaskHistoryRepository(session).insert(
                task,
                started_at=started_at,
                ended_at=ended_at,
                duration_ms=duration_ms(started_at, ended_at),
                task_details=stats.as_dict(),
                db_id=db_id,
            )


__all__ = [
    "HistoryRecorder",
    "TASK_REFRESH",
    "TASK_REFRESH_INDIVIDUAL",
    "TASK_UNPERSIST",
    "duration_ms",
]
