# src/api/facade.py — v1
"""Public API facade — wire collaborators from settings.

Usage:
    from shipyard.api.facade import build_control_plane
    async with build_control_plane(settings, platform=platform) as plane:
        plane.engine.on_revision("web@3f2c1d0e9a#12")

Any collaborator passed explicitly wins over the configured backend.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shipyard.artifacts.store_factory import create_artifact_store
from shipyard.build.toolchain_factory import create_toolchain
from shipyard.config.settings import Settings
from shipyard.manifests.repository_factory import create_manifest_repository
from shipyard.pipeline.context import PipelineServices
from shipyard.pipeline.engine import PipelineEngine
from shipyard.platform.base_platform import BaseMetricsSource
from shipyard.platform.memory_platform import MemoryPlatform
from shipyard.reconciler.reconciler import GitOpsReconciler
from shipyard.runtime.control_plane import ControlPlane
from shipyard.scanning.quality_gate import QualityGate
from shipyard.scanning.scanner_factory import create_scanner

if TYPE_CHECKING:
    from shipyard.artifacts.base_artifact_store import BaseArtifactStore
    from shipyard.build.base_toolchain import BaseToolchain
    from shipyard.manifests.base_repository import BaseManifestRepository
    from shipyard.pipeline.stage import BaseStage
    from shipyard.platform.base_platform import BasePlatform
    from shipyard.scanning.base_scanner import BaseScanner

logger = logging.getLogger(__name__)


def build_pipeline_services(
    settings: Settings,
    toolchain: BaseToolchain | None = None,
    scanner: BaseScanner | None = None,
    store: BaseArtifactStore | None = None,
    repository: BaseManifestRepository | None = None,
) -> PipelineServices:
    """Resolve the pipeline's external collaborators."""
    return PipelineServices(
        toolchain=toolchain if toolchain is not None else create_toolchain(settings),
        scanner=scanner if scanner is not None else create_scanner(settings),
        store=store if store is not None else create_artifact_store(settings),
        repository=repository if repository is not None else create_manifest_repository(settings),
        gate=QualityGate(settings.quality_gate_threshold),
        cas_max_attempts=settings.manifest_cas_max_attempts,
    )


def build_control_plane(
    settings: Settings | None = None,
    platform: BasePlatform | None = None,
    metrics: BaseMetricsSource | None = None,
    toolchain: BaseToolchain | None = None,
    scanner: BaseScanner | None = None,
    store: BaseArtifactStore | None = None,
    repository: BaseManifestRepository | None = None,
    stages: list[BaseStage] | None = None,
) -> ControlPlane:
    """Assemble engine, reconciler and control plane.

    Args:
        settings: Global settings. Loaded from .env if None.
        platform: Live platform. An empty in-memory platform if None.
        metrics: Utilization source. Defaults to ``platform`` when it
            also implements the metrics interface.

    Raises:
        ValueError: If no metrics source can be resolved.
    """
    settings = settings or Settings()
    if platform is None:
        platform = MemoryPlatform()
    if metrics is None:
        if not isinstance(platform, BaseMetricsSource):
            raise ValueError("A metrics source is required when the platform provides none")
        metrics = platform

    services = build_pipeline_services(settings, toolchain, scanner, store, repository)
    engine = PipelineEngine.from_settings(services, settings, stages=stages)
    reconciler = GitOpsReconciler.from_settings(services.repository, platform, settings)

    logger.debug(
        "Control plane assembled: store=%s, repository=%s, scanner=%s",
        type(services.store).__name__,
        type(services.repository).__name__,
        services.scanner.name,
    )
    return ControlPlane(
        settings=settings,
        engine=engine,
        reconciler=reconciler,
        repository=services.repository,
        platform=platform,
        metrics=metrics,
    )
