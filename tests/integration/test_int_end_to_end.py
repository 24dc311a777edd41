# tests/integration/test_int_end_to_end.py — v1
"""End-to-end: revision -> pipeline -> manifest commit -> reconciler -> platform.

Runs the whole control plane in memory with fast intervals, with the
autoscaler ticking alongside.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from conftest import FakeToolchain, make_manifest
from shipyard.api.facade import build_control_plane
from shipyard.artifacts.memory_store import MemoryArtifactStore
from shipyard.config.settings import Settings
from shipyard.core.models import ResourceKey, Revision, ScalingPolicy
from shipyard.manifests.memory_repository import MemoryManifestRepository
from shipyard.platform.memory_platform import MemoryPlatform
from shipyard.reconciler.desired import TRACKING_LABEL


async def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def _image(platform: MemoryPlatform, workload: str) -> str | None:
    resource = platform.resource(ResourceKey("Deployment", "apps", workload))
    if resource is None:
        return None
    return resource.spec["template"]["spec"]["containers"][0]["image"]


class HangingToolchain(FakeToolchain):
    """Never finishes compiling the ``api`` workload."""

    async def _step(self, step: str, revision: Revision) -> None:
        if step == "compile" and revision.workload == "api":
            await asyncio.sleep(3600)
        await super()._step(step, revision)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        reconcile_interval_s=60.0,
        autoscale_interval_s=0.02,
        health_poll_interval_s=0.01,
        sync_wave_timeout_s=1.0,
        sync_timeout_s=5.0,
        stabilization_ticks=1,
        scale_cooldown_s=0.0,
        retry_base_delay_s=0.0,
        retry_max_delay_s=0.0,
        retry_jitter=False,
    )


class TestDelivery:
    @pytest.mark.asyncio
    async def test_revision_reaches_platform(self, settings, revision):
        platform = MemoryPlatform()
        repository = MemoryManifestRepository([make_manifest()])
        store = MemoryArtifactStore()
        plane = build_control_plane(
            settings, platform=platform, toolchain=FakeToolchain(),
            store=store, repository=repository,
        )
        async with plane:
            await _wait_for(lambda: _image(platform, "web") == "web:b0-00000000")

            run = await plane.engine.submit(revision)
            assert run.status == "succeeded", run.reason

            await _wait_for(lambda: _image(platform, "web") == "web:b1-3f2c1d0e")
            await _wait_for(lambda: plane.reconciler.status("web").value == "InSync")

        assert await store.exists("web", "b1-3f2c1d0e")
        deployment = platform.resource(ResourceKey("Deployment", "apps", "web"))
        assert deployment.metadata["labels"][TRACKING_LABEL] == "web"
        assert plane.reconciler.history.latest().manifest_versions == {"web": 2}

    @pytest.mark.asyncio
    async def test_autoscaler_and_rollout_do_not_fight(self, settings, revision):
        platform = MemoryPlatform()
        platform.set_metric("web", 100.0)
        policy = ScalingPolicy(min_replicas=1, max_replicas=4, target_utilization=50.0)
        repository = MemoryManifestRepository([make_manifest(scaling=policy)])
        plane = build_control_plane(
            settings, platform=platform, toolchain=FakeToolchain(),
            store=MemoryArtifactStore(), repository=repository,
        )
        async with plane:
            await _wait_for(lambda: platform.replicas("web") == 4)

            run = await plane.engine.submit(revision)
            assert run.status == "succeeded", run.reason
            await _wait_for(lambda: _image(platform, "web") == "web:b1-3f2c1d0e")

            assert platform.replicas("web") == 4
            decisions = plane.autoscalers["web"].decisions
            assert max(d.chosen_replicas or 0 for d in decisions) == 4

    @pytest.mark.asyncio
    async def test_stuck_pipeline_does_not_block_other_loops(self, settings, revision):
        platform = MemoryPlatform()
        repository = MemoryManifestRepository(
            [make_manifest("web"), make_manifest("api", artifact="api:b0-00000000")]
        )
        plane = build_control_plane(
            settings, platform=platform, toolchain=HangingToolchain(),
            store=MemoryArtifactStore(), repository=repository,
        )
        async with plane:
            stuck = plane.engine.enqueue(
                Revision(workload="api", commit="abcdef0123456789", build_number=1)
            )
            await _wait_for(lambda: stuck.stages["compile"].status == "running")

            run = await asyncio.wait_for(plane.engine.submit(revision), timeout=5)
            assert run.status == "succeeded"
            await _wait_for(lambda: _image(platform, "web") == "web:b1-3f2c1d0e")
            assert stuck.status == "running"

        assert stuck.cancel_cause == "shutdown"
        assert _image(platform, "api") == "api:b0-00000000"
