# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory toolchain, sample revisions and manifests, and
wired pipeline services. No external dependencies; all I/O is in memory.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from shipyard.artifacts.memory_store import MemoryArtifactStore
from shipyard.build.base_toolchain import BaseToolchain, Workspace
from shipyard.core.models import (
    ManifestDocument,
    Resource,
    Revision,
    ScalingPolicy,
)
from shipyard.manifests.memory_repository import MemoryManifestRepository
from shipyard.pipeline.context import PipelineServices
from shipyard.pipeline.retry import RetryPolicy
from shipyard.platform.memory_platform import MemoryPlatform
from shipyard.scanning.quality_gate import QualityGate
from shipyard.scanning.static_scanner import StaticScanner


# === HELPERS ===


class FakeToolchain(BaseToolchain):
    """Toolchain whose steps succeed instantly unless told otherwise.

    Args:
        failures: step -> list of exceptions raised on successive calls.
        delays: step -> seconds to sleep before completing.
    """

    def __init__(
        self,
        failures: dict[str, list[Exception]] | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self._failures = {k: list(v) for k, v in (failures or {}).items()}
        self._delays = delays or {}
        self.calls: list[tuple[str, str]] = []

    async def _step(self, step: str, revision: Revision) -> None:
        self.calls.append((step, revision.revision_id))
        if self._delays.get(step):
            await asyncio.sleep(self._delays[step])
        pending = self._failures.get(step)
        if pending:
            raise pending.pop(0)

    async def checkout(self, revision: Revision) -> Workspace:
        await self._step("checkout", revision)
        return Workspace(revision=revision)

    async def compile(self, workspace: Workspace) -> None:
        await self._step("compile", workspace.revision)

    async def test(self, workspace: Workspace) -> None:
        await self._step("test", workspace.revision)

    async def package(self, workspace: Workspace) -> None:
        await self._step("package", workspace.revision)

    async def build_image(self, workspace: Workspace) -> bytes:
        await self._step("image", workspace.revision)
        revision = workspace.revision
        return f"image:{revision.workload}:{revision.commit}".encode()


def make_deployment(
    name: str = "web",
    namespace: str = "apps",
    replicas: int | None = 2,
    image: str = "placeholder",
    **metadata: Any,
) -> Resource:
    spec: dict[str, Any] = {
        "selector": {"matchLabels": {"app": name}},
        "template": {"spec": {"containers": [{"name": name, "image": image}]}},
    }
    if replicas is not None:
        spec["replicas"] = replicas
    return Resource(kind="Deployment", name=name, namespace=namespace, metadata=metadata, spec=spec)


def make_manifest(
    workload: str = "web",
    artifact: str = "web:b0-00000000",
    scaling: ScalingPolicy | None = None,
    prune: bool = False,
    replicas: int | None = 2,
) -> ManifestDocument:
    return ManifestDocument(
        workload=workload,
        artifact=artifact,
        resources=[
            Resource(kind="Namespace", name="apps", namespace=""),
            Resource(
                kind="ConfigMap",
                name=f"{workload}-config",
                namespace="apps",
                spec={"data": {"LOG_LEVEL": "info"}},
            ),
            make_deployment(workload, replicas=replicas),
            Resource(
                kind="Service",
                name=workload,
                namespace="apps",
                spec={"ports": [{"port": 80, "targetPort": 8080}]},
            ),
        ],
        scaling=scaling,
        prune=prune,
    )


FAST_RETRY = RetryPolicy(max_attempts=3, base_delay_s=0.0, max_delay_s=0.0, jitter=False)


# === FIXTURES: Sample data ===


@pytest.fixture
def revision() -> Revision:
    return Revision(workload="web", commit="3f2c1d0e9a8b7c6d5e4f", build_number=1)


@pytest.fixture
def manifest() -> ManifestDocument:
    return make_manifest()


# === FIXTURES: Collaborators ===


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def repository(manifest: ManifestDocument) -> MemoryManifestRepository:
    return MemoryManifestRepository([manifest])


@pytest.fixture
def scanner() -> StaticScanner:
    return StaticScanner()


@pytest.fixture
def platform() -> MemoryPlatform:
    return MemoryPlatform()


@pytest.fixture
def services(
    toolchain: FakeToolchain,
    scanner: StaticScanner,
    store: MemoryArtifactStore,
    repository: MemoryManifestRepository,
) -> PipelineServices:
    return PipelineServices(
        toolchain=toolchain,
        scanner=scanner,
        store=store,
        repository=repository,
        gate=QualityGate(),
        cas_max_attempts=5,
    )
