# tests/unit/runtime/test_unit_control_plane.py — v1
"""Tests for runtime/control_plane.py and the api facade that builds it."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from conftest import FakeToolchain, make_manifest
from shipyard.api.facade import build_control_plane, build_pipeline_services
from shipyard.artifacts.memory_store import MemoryArtifactStore
from shipyard.config.settings import Settings
from shipyard.core.models import ResourceKey, ResourceSelector, ResourceTree, ScalingPolicy
from shipyard.manifests.memory_repository import MemoryManifestRepository
from shipyard.platform.base_platform import BasePlatform
from shipyard.platform.memory_platform import MemoryPlatform
from shipyard.scanning.static_scanner import StaticScanner

DEPLOYMENT = ResourceKey("Deployment", "apps", "web")
SCALING = ScalingPolicy(min_replicas=1, max_replicas=5, target_utilization=50.0)


async def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class ApplyOnlyPlatform(BasePlatform):
    async def get_observed(self, selector: ResourceSelector | None = None) -> ResourceTree:
        return ResourceTree()

    async def apply(self, tree: ResourceTree) -> None:
        return None

    async def delete(self, keys: list[ResourceKey]) -> None:
        return None

    async def set_replicas(self, workload: str, count: int) -> None:
        return None


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


def _plane(settings, platform, repository, toolchain=None):
    return build_control_plane(
        settings,
        platform=platform,
        toolchain=toolchain or FakeToolchain(),
        store=MemoryArtifactStore(),
        repository=repository,
    )


class TestStartup:
    @pytest.mark.asyncio
    async def test_first_pass_applies_manifests(self, settings):
        platform = MemoryPlatform()
        repository = MemoryManifestRepository([make_manifest()])
        async with _plane(settings, platform, repository) as plane:
            assert plane.running
            await _wait_for(lambda: plane.reconciler.history.latest() is not None)
            assert plane.reconciler.history.latest().status == "InSync"
        assert not plane.running
        deployment = platform.resource(DEPLOYMENT)
        containers = deployment.spec["template"]["spec"]["containers"]
        assert containers[0]["image"] == "web:b0-00000000"

    @pytest.mark.asyncio
    async def test_autoscaler_started_for_scaled_workloads(self, settings):
        platform = MemoryPlatform()
        platform.set_metric("web", 100.0)
        repository = MemoryManifestRepository([make_manifest(scaling=SCALING)])
        async with _plane(settings, platform, repository) as plane:
            assert set(plane.autoscalers) == {"web"}
            await _wait_for(lambda: bool(platform.replica_updates))
        assert platform.replica_updates[0] == ("web", 2)

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, settings):
        repository = MemoryManifestRepository([make_manifest()])
        plane = _plane(settings, MemoryPlatform(), repository)
        await plane.start()
        await plane.start()
        await plane.stop()
        assert len(repository._listeners) == 1


class TestCommitEvents:
    @pytest.mark.asyncio
    async def test_commit_wakes_reconciler(self, settings):
        platform = MemoryPlatform()
        repository = MemoryManifestRepository([make_manifest()])
        async with _plane(settings, platform, repository) as plane:
            await _wait_for(lambda: len(plane.reconciler.history) == 1)
            document, version = await repository.read("web")
            await repository.write("web", document.with_artifact("web:b9-99999999"), version)
            await _wait_for(lambda: len(plane.reconciler.history) >= 2)
            await _wait_for(
                lambda: plane.reconciler.history.latest().manifest_versions == {"web": 2}
            )

        image = platform.resource(DEPLOYMENT).spec["template"]["spec"]["containers"][0]["image"]
        assert image == "web:b9-99999999"

    @pytest.mark.asyncio
    async def test_commit_adds_and_removes_autoscalers(self, settings):
        platform = MemoryPlatform()
        repository = MemoryManifestRepository([make_manifest()])
        async with _plane(settings, platform, repository) as plane:
            assert plane.autoscalers == {}

            document, version = await repository.read("web")
            scaled = document.model_copy(update={"scaling": SCALING})
            version = await repository.write("web", scaled, version)
            await _wait_for(lambda: "web" in plane.autoscalers)

            unscaled = scaled.model_copy(update={"scaling": None})
            await repository.write("web", unscaled, version)
            await _wait_for(lambda: "web" not in plane.autoscalers)

    @pytest.mark.asyncio
    async def test_unset_bounds_come_from_settings(self, settings):
        settings = settings.model_copy(
            update={"min_replicas": 3, "max_replicas": 4, "target_utilization": 50.0}
        )
        repository = MemoryManifestRepository([
            make_manifest(scaling=ScalingPolicy()),
            make_manifest("api", artifact="api:b0-00000000", scaling=ScalingPolicy(max_replicas=8)),
        ])
        plane = _plane(settings, MemoryPlatform(), repository)

        await plane.refresh_autoscalers()

        web = plane.autoscalers["web"].policy
        api = plane.autoscalers["api"].policy
        assert (web.min_replicas, web.max_replicas, web.target_utilization) == (3, 4, 50.0)
        assert (api.min_replicas, api.max_replicas, api.target_utilization) == (3, 8, 50.0)

    @pytest.mark.asyncio
    async def test_policy_updated_in_place(self, settings):
        repository = MemoryManifestRepository([make_manifest(scaling=SCALING)])
        async with _plane(settings, MemoryPlatform(), repository) as plane:
            controller = plane.autoscalers["web"]
            document, version = await repository.read("web")
            wider = SCALING.model_copy(update={"max_replicas": 9})
            await repository.write("web", document.model_copy(update={"scaling": wider}), version)
            await _wait_for(lambda: controller.policy.max_replicas == 9)
            assert plane.autoscalers["web"] is controller


class TestShutdown:
    @pytest.mark.asyncio
    async def test_stop_cancels_running_pipeline(self, settings, revision):
        repository = MemoryManifestRepository([make_manifest()])
        toolchain = FakeToolchain(delays={"compile": 5.0})
        plane = _plane(settings, MemoryPlatform(), repository, toolchain=toolchain)
        await plane.start()
        run = plane.engine.enqueue(revision)
        await _wait_for(lambda: run.status == "running")

        await plane.stop()

        assert run.cancel_cause == "shutdown"
        assert (await repository.read("web"))[1] == 1


class TestFacade:
    def test_metrics_source_required(self, settings):
        with pytest.raises(ValueError, match="metrics source"):
            build_control_plane(settings, platform=ApplyOnlyPlatform())

    def test_explicit_metrics_source(self, settings):
        plane = build_control_plane(
            settings, platform=ApplyOnlyPlatform(), metrics=MemoryPlatform()
        )
        assert plane.engine is not None

    def test_pipeline_services_from_settings(self, settings):
        services = build_pipeline_services(settings)
        assert isinstance(services.store, MemoryArtifactStore)
        assert isinstance(services.repository, MemoryManifestRepository)
        assert isinstance(services.scanner, StaticScanner)
        assert services.gate.threshold == settings.quality_gate_threshold
