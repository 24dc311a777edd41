# src/pipeline/stages.py — v1
"""Standard delivery stages.

checkout → compile → test → dependency-scan → quality-gate → package →
image-build → image-scan → push → manifest-update → commit

Each stage depends on the one before it, so the default graph runs
strictly sequentially.
"""

from __future__ import annotations

import logging
from typing import Any

from shipyard.artifacts.base_artifact_store import compute_digest
from shipyard.core.errors import AlreadyExists, PolicyViolation, ShipyardError
from shipyard.core.models import ScanReport, ScanTarget, StagePolicy
from shipyard.manifests.cas import update_artifact_reference
from shipyard.pipeline.context import StageContext
from shipyard.pipeline.stage import BaseStage

logger = logging.getLogger(__name__)


class _ChainedStage(BaseStage):
    """Stage depending on a single predecessor."""

    stage_name = ""

    def __init__(self, after: str | None = None) -> None:
        self._after = after

    @property
    def name(self) -> str:
        return self.stage_name

    @property
    def dependencies(self) -> list[str]:
        return [self._after] if self._after else []


def _workspace(ctx: StageContext):
    if ctx.workspace is None:
        raise ShipyardError("No workspace: checkout has not run")
    return ctx.workspace


class CheckoutStage(_ChainedStage):
    stage_name = "checkout"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        ctx.workspace = await ctx.services.toolchain.checkout(ctx.revision)
        return {"commit": ctx.revision.commit, "path": str(ctx.workspace.path or "")}

    async def release(self, ctx: StageContext) -> None:
        if ctx.workspace is not None:
            ctx.services.toolchain.cleanup(ctx.workspace)
            ctx.workspace = None


class CompileStage(_ChainedStage):
    stage_name = "compile"

    async def execute(self, ctx: StageContext) -> None:
        await ctx.services.toolchain.compile(_workspace(ctx))


class RunTestsStage(_ChainedStage):
    stage_name = "test"

    async def execute(self, ctx: StageContext) -> None:
        await ctx.services.toolchain.test(_workspace(ctx))


class PackageStage(_ChainedStage):
    stage_name = "package"

    async def execute(self, ctx: StageContext) -> None:
        await ctx.services.toolchain.package(_workspace(ctx))


class ImageBuildStage(_ChainedStage):
    stage_name = "image-build"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        ctx.image = await ctx.services.toolchain.build_image(_workspace(ctx))
        return {"digest": compute_digest(ctx.image), "size": len(ctx.image)}


def _report_output(report: ScanReport) -> dict[str, Any]:
    return {
        "scanner": report.scanner,
        "passed": report.passed,
        "findings": report.counts_by_severity(),
    }


class DependencyScanStage(_ChainedStage):
    """Advisory dependency scan. Its report feeds the quality gate."""

    stage_name = "dependency-scan"

    def __init__(self, after: str | None = None, policy: StagePolicy = "best-effort") -> None:
        super().__init__(after)
        self._policy = policy

    @property
    def policy(self) -> StagePolicy:
        return self._policy

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        workspace = _workspace(ctx)
        report = await ctx.services.scanner.scan(
            ScanTarget(
                kind="dependencies",
                ref=ctx.revision.commit,
                path=str(workspace.path) if workspace.path else None,
            )
        )
        ctx.reports.append(report)
        if not report.passed:
            raise PolicyViolation(f"Dependency scanner {report.scanner} reported failure")
        return _report_output(report)


class QualityGateStage(_ChainedStage):
    """Static analysis scan, then the severity gate over all reports so far."""

    stage_name = "quality-gate"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        workspace = _workspace(ctx)
        report = await ctx.services.scanner.scan(
            ScanTarget(
                kind="source",
                ref=ctx.revision.commit,
                path=str(workspace.path) if workspace.path else None,
            )
        )
        reports = [r for r in ctx.reports if r.target.kind != "source"] + [report]
        verdict = ctx.services.gate.enforce(reports)
        ctx.reports = reports
        return {
            "threshold": verdict.threshold.value,
            "advisory": len(verdict.advisory),
            "summary": verdict.summary(),
        }


class ImageScanStage(_ChainedStage):
    """Scan the built image before it is pushed; blocks on the same threshold."""

    stage_name = "image-scan"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        if ctx.image is None:
            raise ShipyardError("No image: image-build has not run")
        report = await ctx.services.scanner.scan(
            ScanTarget(kind="image", ref=f"{ctx.artifact_name}:{ctx.tag}")
        )
        ctx.reports.append(report)
        verdict = ctx.services.gate.enforce([report])
        return {**_report_output(report), "summary": verdict.summary()}


class PushStage(_ChainedStage):
    """Idempotent push: an existing tag with the same digest is a success."""

    stage_name = "push"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        if ctx.image is None:
            raise ShipyardError("No image: image-build has not run")
        store = ctx.services.store
        try:
            artifact = await store.push(ctx.artifact_name, ctx.tag, ctx.image)
            reused = False
        except AlreadyExists as exc:
            if exc.artifact.digest != compute_digest(ctx.image):
                raise PolicyViolation(
                    f"Tag {exc.artifact.reference} already holds a different image"
                ) from exc
            artifact = exc.artifact
            reused = True
            logger.info("Artifact %s already pushed, reusing", artifact.reference)

        ctx.artifact = artifact
        ctx.run.artifact = artifact
        return {"reference": artifact.reference, "digest": artifact.digest, "reused": reused}

    async def release(self, ctx: StageContext) -> None:
        if ctx.artifact is None:
            await ctx.services.store.abort(ctx.artifact_name, ctx.tag)


class ManifestUpdateStage(_ChainedStage):
    """Compare-and-swap the manifest's artifact reference."""

    stage_name = "manifest-update"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        if ctx.artifact is None:
            raise ShipyardError("No artifact: push has not run")
        result = await update_artifact_reference(
            ctx.services.repository,
            ctx.services.store,
            ctx.workload,
            ctx.artifact,
            max_attempts=ctx.services.cas_max_attempts,
        )
        ctx.manifest_version = result.version
        return {
            "previous": result.previous_reference,
            "reference": result.reference,
            "base_version": result.base_version,
            "version": result.version,
            "attempts": result.attempts,
            "changed": result.changed,
        }


class CommitStage(_ChainedStage):
    """Confirm the committed manifest version references the pushed artifact.

    Repository listeners have already been notified by the write itself.
    """

    stage_name = "commit"

    async def execute(self, ctx: StageContext) -> dict[str, Any]:
        if ctx.manifest_version is None or ctx.artifact is None:
            raise ShipyardError("Nothing to commit: manifest-update has not run")
        history = await ctx.services.repository.history(ctx.workload)
        committed = next((r for r in history if r.version == ctx.manifest_version), None)
        if committed is None or committed.document.artifact != ctx.artifact.reference:
            raise ShipyardError(
                f"Manifest {ctx.workload} v{ctx.manifest_version} does not reference "
                f"{ctx.artifact.reference}"
            )
        return {"version": ctx.manifest_version, "reference": ctx.artifact.reference}


STANDARD_STAGE_CLASSES: list[type[_ChainedStage]] = [
    CheckoutStage,
    CompileStage,
    RunTestsStage,
    DependencyScanStage,
    QualityGateStage,
    PackageStage,
    ImageBuildStage,
    ImageScanStage,
    PushStage,
    ManifestUpdateStage,
    CommitStage,
]


def build_standard_stages(dependency_scan_policy: StagePolicy = "best-effort") -> list[BaseStage]:
    """Return the standard sequential stage chain."""
    stages: list[BaseStage] = []
    previous: str | None = None
    for cls in STANDARD_STAGE_CLASSES:
        if cls is DependencyScanStage:
            stage: BaseStage = DependencyScanStage(previous, policy=dependency_scan_policy)
        else:
            stage = cls(previous)
        stages.append(stage)
        previous = stage.name
    return stages
