from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, Text, ForeignKey, Boolean, DateTime, Index, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

PERSIST_MODELS_ENABLED = "persist-models-enabled"

# persisted_info.state values
STATE_CREATING = "creating"
STATE_PERSISTING = "persisting"
STATE_PERSISTED = "persisted"
STATE_ERROR = "error"
STATE_DELETABLE = "deletable"
STATE_OFF = "off"

REFRESHABLE_STATES = frozenset({STATE_PERSISTED, STATE_ERROR})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Database(Base):
    """A connected warehouse whose models may be persisted"""
    __tablename__ = "databases"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(254))
    engine: Mapped[str] = mapped_column(String(254))
    options: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    persisted: Mapped[List["PersistedInfo"]] = relationship(back_populates="database", cascade="all, delete-orphan")

    @property
    def persist_models_enabled(self) -> bool:
        return bool((self.options or {}).get(PERSIST_MODELS_ENABLED))


class PersistedInfo(Base):
    """Materialized table backing a model (card)"""
    __tablename__ = "persisted_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    database_id: Mapped[int] = mapped_column(ForeignKey("databases.id", ondelete="CASCADE"))
    card_id: Mapped[int] = mapped_column(Integer)
    table_name: Mapped[Optional[str]] = mapped_column(String(254))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    state: Mapped[str] = mapped_column(String(32), default=STATE_CREATING)
    state_change_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refresh_begin: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refresh_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    database: Mapped["Database"] = relationship(back_populates="persisted")

    __table_args__ = (
        Index("idx_persisted_info_database_state", "database_id", "state"),
        Index("idx_persisted_info_card", "card_id"),
    )


class TaskHistory(Base):
    """Append-only record of one refresh or unpersist run"""
    __tablename__ = "task_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task: Mapped[str] = mapped_column(String(254))
    db_id: Mapped[Optional[int]] = mapped_column(ForeignKey("databases.id", ondelete="SET NULL"))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int] = mapped_column(Integer)  # milliseconds
    task_details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    __table_args__ = (
        Index("idx_task_history_task_started", "task", "started_at"),
    )


class Setting(Base):
    __tablename__ = "setting"

    key: Mapped[str] = mapped_column(String(254), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text)
