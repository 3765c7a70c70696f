"""
Error hierarchy for the persisted-model refresh scheduler, used for clear classification in logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PersistRefreshError(Exception):
    """Base class for all refresh scheduler errors."""

    def __init__(
        self,
        message: str,
        *,
        database_id: Optional[int] = None,
        persisted_id: Optional[int] = None,
        task: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.database_id = database_id
        self.persisted_id = persisted_id
        self.task = task
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        """Serializable representation for logs."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "database_id": self.database_id,
            "persisted_id": self.persisted_id,
            "task": self.task,
            "details": self.details,
        }


class RefreshError(PersistRefreshError):
    """Raised by a backend while refreshing or unpersisting a model table."""

    def __init__(
        self,
        message: str,
        *,
        engine: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.engine = engine
        self.operation = operation
        if engine is not None:
            self.details["engine"] = engine
        if operation is not None:
            self.details["operation"] = operation


class UnsupportedEngineError(RefreshError):
    """Raised when no refresher is registered for a database's engine."""


class ConfigError(PersistRefreshError):
    """Raised on missing/invalid configuration values."""

    def __init__(
        self,
        message: str,
        *,
        key: Optional[str] = None,
        section: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.key = key
        self.section = section
        if key is not None:
            self.details["key"] = key
        if section is not None:
            self.details["section"] = section


class SchedulerStateError(PersistRefreshError):
    """Raised when triggers are administered while the trigger store is not running."""
