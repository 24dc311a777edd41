# src/artifacts/store_factory.py — v1
"""Factory for artifact store instantiation."""

from __future__ import annotations

from shipyard.artifacts.base_artifact_store import BaseArtifactStore
from shipyard.config.settings import Settings


def create_artifact_store(settings: Settings | None = None) -> BaseArtifactStore:
    """Instantiate the configured artifact store backend.

    Args:
        settings: Application settings. Defaults to the in-memory backend.
    """
    backend = "memory" if settings is None else settings.artifact_store

    if backend == "memory":
        from shipyard.artifacts.memory_store import MemoryArtifactStore
        return MemoryArtifactStore()

    if backend == "local":
        from shipyard.artifacts.local_store import LocalArtifactStore
        return LocalArtifactStore(root=settings.artifact_root)

    raise ValueError(f"Unsupported artifact store: {backend!r}")
