# src/artifacts/base_artifact_store.py — v1
"""Abstract artifact store interface.

Tags are immutable: pushing an existing (name, tag) raises AlreadyExists
carrying the stored artifact, so callers can decide whether the push was
a harmless repeat (same digest) or a genuine clash.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod

from shipyard.core.models import Artifact


def compute_digest(blob: bytes) -> str:
    """Content address of a blob."""
    return "sha256:" + hashlib.sha256(blob).hexdigest()


class BaseArtifactStore(ABC):
    """Unified interface for versioned build artifact storage."""

    @abstractmethod
    async def push(self, name: str, tag: str, blob: bytes) -> Artifact:
        """Store a blob under (name, tag).

        Raises:
            AlreadyExists: If the tag is already present.
            TransientInfraError: If the store is temporarily unavailable.
        """

    @abstractmethod
    async def exists(self, name: str, tag: str) -> bool:
        """Check whether (name, tag) has been pushed."""

    @abstractmethod
    async def get(self, name: str, tag: str) -> Artifact | None:
        """Return artifact metadata, or None."""

    @abstractmethod
    async def pull(self, name: str, tag: str) -> bytes:
        """Return the blob for (name, tag).

        Raises:
            ArtifactNotFound: If the tag is absent.
        """

    @abstractmethod
    async def list_tags(self, name: str) -> list[str]:
        """List tags for an artifact name in push order."""

    async def abort(self, name: str, tag: str) -> None:
        """Release a partially completed push. Default: nothing to release."""
