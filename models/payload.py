"""Job payload carried by every refresh trigger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

PAYLOAD_DATABASE = "database"
PAYLOAD_INDIVIDUAL = "individual"
PAYLOAD_TYPES = frozenset({PAYLOAD_DATABASE, PAYLOAD_INDIVIDUAL})


@dataclass(slots=True, frozen=True)
class JobPayload:
    """``type`` selects the refresh path; ``target_id`` is a database id or a persisted_info id."""

    type: str
    target_id: Optional[int] = None

    @property
    def is_known(self) -> bool:
        return self.type in PAYLOAD_TYPES and self.target_id is not None

    def to_kwargs(self) -> Dict[str, Any]:
        return {"type": self.type, "target_id": self.target_id}

    @classmethod
    def for_database(cls, database_id: int) -> "JobPayload":
        return cls(type=PAYLOAD_DATABASE, target_id=int(database_id))

    @classmethod
    def for_individual(cls, persisted_id: int) -> "JobPayload":
        return cls(type=PAYLOAD_INDIVIDUAL, target_id=int(persisted_id))

    @classmethod
    def from_kwargs(cls, payload: Mapping[str, Any]) -> "JobPayload":
        raw_target = payload.get("target_id")
        try:
            target_id = int(raw_target) if raw_target is not None else None
        except (TypeError, ValueError):
            target_id = None
        return cls(type=str(payload.get("type")), target_id=target_id)


__all__ = ["JobPayload", "PAYLOAD_DATABASE", "PAYLOAD_INDIVIDUAL", "PAYLOAD_TYPES"]
