# src/manifests/repository_factory.py — v1
"""Factory for manifest repository instantiation."""

from __future__ import annotations

from shipyard.config.settings import Settings
from shipyard.manifests.base_repository import BaseManifestRepository


def create_manifest_repository(settings: Settings | None = None) -> BaseManifestRepository:
    """Instantiate the configured manifest repository backend."""
    backend = "memory" if settings is None else settings.manifest_repository

    if backend == "memory":
        from shipyard.manifests.memory_repository import MemoryManifestRepository
        return MemoryManifestRepository()

    if backend == "yaml":
        from shipyard.manifests.yaml_repository import YamlManifestRepository
        return YamlManifestRepository(root=settings.manifest_root)

    raise ValueError(f"Unsupported manifest repository: {backend!r}")
