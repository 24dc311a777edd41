# src/manifests/base_repository.py — v1
"""Abstract manifest repository interface.

The repository is the single source of truth for desired state. Writers
never lock it: every write names the version it was derived from and is
rejected with ConflictError if another writer got there first.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from shipyard.core.models import ManifestDocument, ManifestRevision

logger = logging.getLogger(__name__)

CommitListener = Callable[[str, int], None]


class BaseManifestRepository(ABC):
    """Versioned store of per-workload ManifestDocuments."""

    def __init__(self) -> None:
        self._listeners: list[CommitListener] = []

    @abstractmethod
    async def read(self, workload: str) -> tuple[ManifestDocument, int]:
        """Return the current document and its version.

        Raises:
            ManifestNotFound: If the workload has no manifest.
        """

    @abstractmethod
    async def write(
        self,
        workload: str,
        document: ManifestDocument,
        expected_version: int,
        message: str = "",
    ) -> int:
        """Commit ``document`` if the stored version equals ``expected_version``.

        A workload that has never been written is at version 0.

        Returns:
            The new version number.

        Raises:
            ConflictError: If the stored version differs.
        """

    @abstractmethod
    async def list_workloads(self) -> list[str]:
        """Return sorted workload names."""

    @abstractmethod
    async def history(self, workload: str) -> list[ManifestRevision]:
        """Return every committed revision, oldest first."""

    async def read_all(self) -> dict[str, tuple[ManifestDocument, int]]:
        """Read every workload's current document and version."""
        return {w: await self.read(w) for w in await self.list_workloads()}

    def add_listener(self, listener: CommitListener) -> None:
        """Register a callback invoked as ``listener(workload, version)`` on commit."""
        self._listeners.append(listener)

    def _notify(self, workload: str, version: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(workload, version)
            except Exception:
                logger.exception("Commit listener failed for %s v%d", workload, version)
