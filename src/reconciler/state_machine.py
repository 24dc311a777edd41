# src/reconciler/state_machine.py — v1
"""Per-workload sync state machine.

    Unknown ──read ok──▶ InSync ◀──────────────┐
       ▲                   │ diff               │ converged
       │ unreachable       ▼                    │
       └────────────── OutOfSync ──apply──▶ Progressing ──timeout──▶ Degraded

Any state may move to Unknown when the platform cannot be read.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from shipyard.core.models import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TRANSITION_LIMIT = 20


class SyncStatus(str, Enum):
    IN_SYNC = "InSync"
    OUT_OF_SYNC = "OutOfSync"
    PROGRESSING = "Progressing"
    DEGRADED = "Degraded"
    UNKNOWN = "Unknown"


_SEVERITY_ORDER = [
    SyncStatus.IN_SYNC,
    SyncStatus.OUT_OF_SYNC,
    SyncStatus.PROGRESSING,
    SyncStatus.UNKNOWN,
    SyncStatus.DEGRADED,
]


def worst_status(statuses: list[SyncStatus]) -> SyncStatus:
    """Most severe status of a set; InSync when empty."""
    if not statuses:
        return SyncStatus.IN_SYNC
    return max(statuses, key=_SEVERITY_ORDER.index)


class StatusTransition(BaseModel):
    from_status: SyncStatus
    to_status: SyncStatus
    reason: str = ""
    at: datetime = Field(default_factory=utcnow)


class WorkloadSyncState:
    """Current sync status of one workload plus its recent transitions."""

    def __init__(self, workload: str, transition_limit: int = DEFAULT_TRANSITION_LIMIT) -> None:
        self.workload = workload
        self.status = SyncStatus.UNKNOWN
        self.reason = ""
        self.changed_at: datetime = utcnow()
        self.transitions: deque[StatusTransition] = deque(maxlen=transition_limit)

    def transition(self, status: SyncStatus, reason: str = "") -> bool:
        """Move to ``status``. Returns False if nothing changed."""
        if status == self.status and reason == self.reason:
            return False
        if status != self.status:
            self.transitions.append(
                StatusTransition(from_status=self.status, to_status=status, reason=reason)
            )
            logger.info(
                "Workload %s: %s -> %s%s",
                self.workload, self.status.value, status.value, f" ({reason})" if reason else "",
            )
            self.changed_at = utcnow()
        self.status = status
        self.reason = reason
        return True

    def to_dict(self) -> dict[str, object]:
        return {
            "workload": self.workload,
            "status": self.status.value,
            "reason": self.reason,
            "changed_at": self.changed_at.isoformat(),
        }
