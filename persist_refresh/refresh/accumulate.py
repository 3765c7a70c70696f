"""Catch-log-count fold shared by the refresh, unpersist and individual paths."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, TypeVar

from models.stats import RefreshStats
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


async def accumulate(
    items: Iterable[T],
    action: Callable[[T], Awaitable[Any]],
    *,
    describe: Callable[[T], str] = str,
    verb: str = "processing",
) -> RefreshStats:
    """
    Run ``action`` for every item and tally the outcomes.

    A raised exception or an explicit ``False`` result counts as an error and
    processing moves on to the next item. Cancellation is not caught.
    """
    stats = RefreshStats()
    for item in items:
        try:
            result = await action(item)
        except Exception as exc:  # noqa: BLE001
            log.opt(exception=exc).warning(f"Error {verb} {describe(item)}: {exc}")
            stats.record_error()
            continue

        if result is False:
            log.warning(f"Error {verb} {describe(item)}: backend reported failure")
            stats.record_error()
        else:
            stats.record_success()
    return stats


__all__ = ["accumulate"]
