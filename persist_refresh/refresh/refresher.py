"""
Refresher capability: how a persisted model table is rebuilt or dropped.

Backends implement :class:`Refresher` once per engine. The scheduler only
talks to a :class:`DispatchingRefresher`, which picks the backend by the
database's ``engine`` tag; tests pass their own fake refresher instead.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from apscheduler.util import ref_to_obj

from db.models import Database, PersistedInfo
from persist_refresh.core.errors import ConfigError, UnsupportedEngineError
from persist_refresh.utils.logger import get_logger

log = get_logger(__name__)


class Refresher(ABC):
    """Rebuilds or tears down the table behind a persisted model."""

    @abstractmethod
    async def refresh(self, database: Database, persisted_info: PersistedInfo) -> Optional[bool]:
        """Recompute the table. Raise, or return ``False``, on failure."""

    @abstractmethod
    async def unpersist(self, database: Database, persisted_info: PersistedInfo) -> Optional[bool]:
        """Drop the table and release its storage. Raise, or return ``False``, on failure."""


class DispatchingRefresher(Refresher):
    """Routes each call to the refresher registered for ``database.engine``."""

    def __init__(self, backends: Optional[Mapping[str, Refresher]] = None) -> None:
        self._backends: Dict[str, Refresher] = dict(backends or {})

    def register(self, engine: str, refresher: Refresher) -> None:
        if engine in self._backends:
            log.info(f"Replacing refresher for engine {engine}")
        self._backends[engine] = refresher

    def unregister(self, engine: str) -> None:
        self._backends.pop(engine, None)

    @property
    def engines(self) -> List[str]:
        return sorted(self._backends)

    def for_engine(self, engine: str) -> Refresher:
        try:
            return self._backends[engine]
        except KeyError:
            raise UnsupportedEngineError(
                f"No refresher registered for engine {engine!r}",
                engine=engine,
            ) from None

    async def refresh(self, database: Database, persisted_info: PersistedInfo) -> Optional[bool]:
        return await self.for_engine(database.engine).refresh(database, persisted_info)

    async def unpersist(self, database: Database, persisted_info: PersistedInfo) -> Optional[bool]:
        return await self.for_engine(database.engine).unpersist(database, persisted_info)

    @classmethod
    def from_config(cls, backends: Optional[Mapping[str, Any]]) -> "DispatchingRefresher":
        """
        Build from the ``refresher.backends`` mapping of engine tag to a
        ``"package.module:ClassName"`` reference; each class is instantiated without arguments.
        """
        dispatching = cls()
        for engine, reference in (backends or {}).items():
            try:
                backend_cls = ref_to_obj(reference)
            except (ValueError, LookupError, TypeError) as exc:
                raise ConfigError(
                    f"Cannot load refresher {reference!r} for engine {engine}: {exc}",
                    key=str(engine),
                    section="refresher.backends",
                ) from exc
            dispatching.register(str(engine), backend_cls())
        log.info(f"Refresher backends registered: {dispatching.engines or 'none'}")
        return dispatching


__all__ = ["Refresher", "DispatchingRefresher"]
