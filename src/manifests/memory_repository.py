# src/manifests/memory_repository.py — v1
"""In-process manifest repository (MANIFEST_REPOSITORY=memory)."""

from __future__ import annotations

import logging

from shipyard.core.errors import ConflictError, ManifestNotFound
from shipyard.core.models import ManifestDocument, ManifestRevision
from shipyard.manifests.base_repository import BaseManifestRepository

logger = logging.getLogger(__name__)


class MemoryManifestRepository(BaseManifestRepository):
    """Dict-backed repository keeping the full revision history."""

    def __init__(self, documents: list[ManifestDocument] | None = None) -> None:
        super().__init__()
        self._revisions: dict[str, list[ManifestRevision]] = {}
        self.write_calls = 0
        for doc in documents or []:
            self._append(doc, "initial")

    async def read(self, workload: str) -> tuple[ManifestDocument, int]:
        revisions = self._revisions.get(workload)
        if not revisions:
            raise ManifestNotFound(f"No manifest for workload '{workload}'")
        latest = revisions[-1]
        return latest.document.model_copy(deep=True), latest.version

    async def write(
        self,
        workload: str,
        document: ManifestDocument,
        expected_version: int,
        message: str = "",
    ) -> int:
        self.write_calls += 1
        current = self._current_version(workload)
        if current != expected_version:
            raise ConflictError(workload, expected_version, current)
        version = self._append(document, message)
        logger.debug("Committed %s v%d", workload, version)
        self._notify(workload, version)
        return version

    async def list_workloads(self) -> list[str]:
        return sorted(self._revisions)

    async def history(self, workload: str) -> list[ManifestRevision]:
        return list(self._revisions.get(workload, []))

    def _current_version(self, workload: str) -> int:
        revisions = self._revisions.get(workload)
        return revisions[-1].version if revisions else 0

    def _append(self, document: ManifestDocument, message: str) -> int:
        version = self._current_version(document.workload) + 1
        self._revisions.setdefault(document.workload, []).append(
            ManifestRevision(
                version=version,
                document=document.model_copy(deep=True),
                message=message,
            )
        )
        return version
