# tests/unit/artifacts/test_unit_memory_store.py — v1
"""Tests for artifacts/memory_store.py — immutable tags and failure injection."""

from __future__ import annotations

import pytest

from shipyard.artifacts.base_artifact_store import compute_digest
from shipyard.artifacts.memory_store import MemoryArtifactStore
from shipyard.core.errors import AlreadyExists, ArtifactNotFound, TransientInfraError


class TestMemoryArtifactStore:
    @pytest.mark.asyncio
    async def test_push_and_pull(self):
        store = MemoryArtifactStore()
        artifact = await store.push("web", "b1-3f2c1d0e", b"layer")
        assert artifact.reference == "web:b1-3f2c1d0e"
        assert artifact.digest == compute_digest(b"layer")
        assert artifact.size == 5
        assert await store.pull("web", "b1-3f2c1d0e") == b"layer"
        assert await store.exists("web", "b1-3f2c1d0e")

    @pytest.mark.asyncio
    async def test_tags_are_immutable(self):
        store = MemoryArtifactStore()
        first = await store.push("web", "b1-aaaa", b"one")
        with pytest.raises(AlreadyExists) as exc_info:
            await store.push("web", "b1-aaaa", b"two")
        assert exc_info.value.artifact == first
        assert await store.pull("web", "b1-aaaa") == b"one"

    @pytest.mark.asyncio
    async def test_list_tags_in_push_order(self):
        store = MemoryArtifactStore()
        for tag in ("b2-bbbb", "b1-aaaa", "b3-cccc"):
            await store.push("web", tag, tag.encode())
        assert await store.list_tags("web") == ["b2-bbbb", "b1-aaaa", "b3-cccc"]
        assert await store.list_tags("api") == []

    @pytest.mark.asyncio
    async def test_pull_missing(self):
        with pytest.raises(ArtifactNotFound):
            await MemoryArtifactStore().pull("web", "nope")

    @pytest.mark.asyncio
    async def test_fail_next(self):
        store = MemoryArtifactStore()
        store.fail_next(2)
        for _ in range(2):
            with pytest.raises(TransientInfraError):
                await store.push("web", "b1-aaaa", b"x")
        await store.push("web", "b1-aaaa", b"x")
        assert store.push_calls == 3

    @pytest.mark.asyncio
    async def test_abort_recorded(self):
        store = MemoryArtifactStore()
        await store.abort("web", "b1-aaaa")
        assert store.aborted == [("web", "b1-aaaa")]
        assert await store.get("web", "b1-aaaa") is None
