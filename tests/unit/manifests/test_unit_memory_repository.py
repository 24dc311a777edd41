# tests/unit/manifests/test_unit_memory_repository.py — v1
"""Tests for manifests/memory_repository.py — versioned writes and listeners."""

from __future__ import annotations

import pytest

from conftest import make_manifest
from shipyard.core.errors import ConflictError, ManifestNotFound
from shipyard.manifests.memory_repository import MemoryManifestRepository
from shipyard.manifests.repository_factory import create_manifest_repository


class TestMemoryManifestRepository:
    @pytest.mark.asyncio
    async def test_seeded_documents_start_at_v1(self):
        repo = MemoryManifestRepository([make_manifest("web"), make_manifest("api")])
        doc, version = await repo.read("web")
        assert version == 1
        assert doc.workload == "web"
        assert await repo.list_workloads() == ["api", "web"]

    @pytest.mark.asyncio
    async def test_read_unknown(self):
        with pytest.raises(ManifestNotFound):
            await MemoryManifestRepository().read("web")

    @pytest.mark.asyncio
    async def test_first_write_expects_zero(self):
        repo = MemoryManifestRepository()
        assert await repo.write("web", make_manifest(), expected_version=0) == 1

    @pytest.mark.asyncio
    async def test_stale_write_conflicts(self):
        repo = MemoryManifestRepository([make_manifest()])
        await repo.write("web", make_manifest(artifact="web:b1-aaaa"), expected_version=1)
        with pytest.raises(ConflictError) as exc_info:
            await repo.write("web", make_manifest(artifact="web:b2-bbbb"), expected_version=1)
        assert exc_info.value.actual == 2
        doc, version = await repo.read("web")
        assert (doc.artifact, version) == ("web:b1-aaaa", 2)

    @pytest.mark.asyncio
    async def test_read_returns_copy(self):
        repo = MemoryManifestRepository([make_manifest()])
        doc, _ = await repo.read("web")
        doc.resources.clear()
        fresh, _ = await repo.read("web")
        assert len(fresh.resources) == 4

    @pytest.mark.asyncio
    async def test_history_and_listeners(self):
        repo = MemoryManifestRepository([make_manifest()])
        seen: list[tuple[str, int]] = []
        repo.add_listener(lambda w, v: seen.append((w, v)))
        await repo.write("web", make_manifest(artifact="web:b1-aaaa"), 1, message="promote")
        history = await repo.history("web")
        assert [r.version for r in history] == [1, 2]
        assert history[-1].message == "promote"
        assert seen == [("web", 2)]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_write(self):
        repo = MemoryManifestRepository([make_manifest()])

        def broken(workload: str, version: int) -> None:
            raise RuntimeError("listener down")

        repo.add_listener(broken)
        assert await repo.write("web", make_manifest(artifact="web:b1-aaaa"), 1) == 2

    @pytest.mark.asyncio
    async def test_read_all(self):
        repo = MemoryManifestRepository([make_manifest("web"), make_manifest("api")])
        everything = await repo.read_all()
        assert set(everything) == {"web", "api"}
        assert everything["api"][1] == 1


class TestRepositoryFactory:
    def test_default_memory(self):
        assert isinstance(create_manifest_repository(), MemoryManifestRepository)
