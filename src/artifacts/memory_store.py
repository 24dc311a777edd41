# src/artifacts/memory_store.py — v1
"""In-process artifact store (ARTIFACT_STORE=memory)."""

from __future__ import annotations

import asyncio
import logging

from shipyard.artifacts.base_artifact_store import BaseArtifactStore, compute_digest
from shipyard.core.errors import AlreadyExists, ArtifactNotFound, TransientInfraError
from shipyard.core.models import Artifact

logger = logging.getLogger(__name__)


class MemoryArtifactStore(BaseArtifactStore):
    """Dict-backed store with optional transient failure injection.

    Args:
        push_delay_s: Simulated upload latency, so cancellation can land mid-push.
    """

    def __init__(self, push_delay_s: float = 0.0) -> None:
        self._artifacts: dict[tuple[str, str], Artifact] = {}
        self._blobs: dict[tuple[str, str], bytes] = {}
        self._order: dict[str, list[str]] = {}
        self._push_delay_s = push_delay_s
        self._failures_pending = 0
        self.push_calls = 0
        self.aborted: list[tuple[str, str]] = []

    def fail_next(self, count: int = 1) -> None:
        """Make the next ``count`` pushes raise TransientInfraError."""
        self._failures_pending += count

    async def push(self, name: str, tag: str, blob: bytes) -> Artifact:
        self.push_calls += 1
        if self._failures_pending > 0:
            self._failures_pending -= 1
            raise TransientInfraError(f"registry unavailable while pushing {name}:{tag}")

        existing = self._artifacts.get((name, tag))
        if existing is not None:
            raise AlreadyExists(existing)

        if self._push_delay_s:
            await asyncio.sleep(self._push_delay_s)

        artifact = Artifact(
            name=name, tag=tag, digest=compute_digest(blob), size=len(blob)
        )
        self._artifacts[(name, tag)] = artifact
        self._blobs[(name, tag)] = blob
        self._order.setdefault(name, []).append(tag)
        logger.debug("Pushed %s (%d bytes)", artifact.reference, artifact.size)
        return artifact

    async def exists(self, name: str, tag: str) -> bool:
        return (name, tag) in self._artifacts

    async def get(self, name: str, tag: str) -> Artifact | None:
        return self._artifacts.get((name, tag))

    async def pull(self, name: str, tag: str) -> bytes:
        try:
            return self._blobs[(name, tag)]
        except KeyError:
            raise ArtifactNotFound(f"{name}:{tag}") from None

    async def list_tags(self, name: str) -> list[str]:
        return list(self._order.get(name, []))

    async def abort(self, name: str, tag: str) -> None:
        self.aborted.append((name, tag))
