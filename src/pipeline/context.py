# src/pipeline/context.py — v1
"""Per-run state flowing through all stages.

Stages read collaborators from ``services`` and exchange intermediate
results (workspace, scan reports, image blob, artifact) through the
context rather than through globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shipyard.core.errors import Cancelled
from shipyard.core.models import Artifact, PipelineRun, Revision, ScanReport

if TYPE_CHECKING:
    from shipyard.artifacts.base_artifact_store import BaseArtifactStore
    from shipyard.build.base_toolchain import BaseToolchain, Workspace
    from shipyard.manifests.base_repository import BaseManifestRepository
    from shipyard.scanning.base_scanner import BaseScanner
    from shipyard.scanning.quality_gate import QualityGate


@dataclass
class PipelineServices:
    """External collaborators available to stages."""

    toolchain: BaseToolchain
    scanner: BaseScanner
    store: BaseArtifactStore
    repository: BaseManifestRepository
    gate: QualityGate
    cas_max_attempts: int = 5


@dataclass
class StageContext:
    """Mutable state of one pipeline run."""

    run: PipelineRun
    services: PipelineServices
    artifact_name: str
    tag: str
    workspace: Workspace | None = None
    reports: list[ScanReport] = field(default_factory=list)
    image: bytes | None = None
    artifact: Artifact | None = None
    manifest_version: int | None = None
    outputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    cancel_reason: str | None = None
    abort_reason: str | None = None

    @property
    def revision(self) -> Revision:
        return self.run.revision

    @property
    def workload(self) -> str:
        return self.run.revision.workload

    def check_cancelled(self) -> None:
        """Raise Cancelled if the run has been asked to stop."""
        if self.cancel_reason is not None:
            raise Cancelled(self.cancel_reason)
