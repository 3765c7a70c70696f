"""Success/error tallies for a refresh or unpersist batch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(slots=True)
class RefreshStats:
    success: int = 0
    error: int = 0

    @property
    def total(self) -> int:
        return self.success + self.error

    def record_success(self) -> None:
        self.success += 1

    def record_error(self) -> None:
        self.error += 1

    def as_dict(self) -> Dict[str, int]:
        return {"success": self.success, "error": self.error}


__all__ = ["RefreshStats"]
