# =============================================================================
# practice_core/offline/models.py
# Data model for the offline mutation queue
# =============================================================================
"""
Records shared by the local store, the sync queue and the sync controller.

QueuedMutation is frozen: once enqueued, only the store's attempt counter and
the removal of the row change. Timestamps are milliseconds since the epoch.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


Clock = Callable[[], int]


def current_millis() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class MutationOperation(Enum):
    """Write operations that can be queued for replay."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def values(cls) -> List[str]:
        return [op.value for op in cls]


@dataclass(frozen=True)
class QueuedMutation:
    """A write waiting to be applied to the backend."""
    id: str
    table: str
    operation: MutationOperation
    payload: Any
    enqueued_at: int
    attempts: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "operation": self.operation.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }


@dataclass
class SyncFailure:
    """One mutation that could not be applied during a replay pass."""
    mutation_id: str
    table: str
    operation: str
    error: str


@dataclass
class SyncResult:
    """Summary of one replay pass."""
    synced: int = 0
    failed: int = 0
    errors: List[SyncFailure] = field(default_factory=list)
    started_at: Optional[int] = None
    finished_at: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def attempted(self) -> int:
        return self.synced + self.failed

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data
