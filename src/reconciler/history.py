# src/reconciler/history.py — v1
"""Bounded, append-only history of reconciliation passes."""

from __future__ import annotations

from collections import deque
from typing import Iterator

from shipyard.core.models import ReconcileSyncRecord


class SyncHistory:
    """Keeps the most recent ``limit`` sync records, oldest first."""

    def __init__(self, limit: int = 50) -> None:
        if limit < 1:
            raise ValueError("History limit must be >= 1")
        self._records: deque[ReconcileSyncRecord] = deque(maxlen=limit)

    @property
    def limit(self) -> int:
        return self._records.maxlen or 0

    def append(self, record: ReconcileSyncRecord) -> None:
        self._records.append(record)

    def latest(self) -> ReconcileSyncRecord | None:
        return self._records[-1] if self._records else None

    def records(self) -> list[ReconcileSyncRecord]:
        return list(self._records)

    def __iter__(self) -> Iterator[ReconcileSyncRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
