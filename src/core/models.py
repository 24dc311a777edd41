# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shipyard.core.errors import RunStateError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# === REVISIONS ===

_REVISION_ID_RE = re.compile(r"^(?P<workload>[^@#\s]+)@(?P<commit>[0-9A-Za-z]+)#(?P<build>\d+)$")


class Revision(BaseModel):
    """Immutable trigger unit: source commit plus build number."""

    model_config = ConfigDict(frozen=True)

    workload: str
    commit: str
    build_number: int = Field(ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def revision_id(self) -> str:
        return f"{self.workload}@{self.commit[:12]}#{self.build_number}"

    @classmethod
    def parse(cls, revision_id: str) -> Revision:
        """Parse ``workload@commit#build`` into a Revision."""
        match = _REVISION_ID_RE.match(revision_id.strip())
        if not match:
            raise ValueError(
                f"Invalid revision id {revision_id!r}, expected 'workload@commit#build'"
            )
        return cls(
            workload=match.group("workload"),
            commit=match.group("commit"),
            build_number=int(match.group("build")),
        )


# === ARTIFACTS & SCANNING ===


class Artifact(BaseModel):
    """Immutable, content-addressed build output identified by (name, tag)."""

    model_config = ConfigDict(frozen=True)

    name: str
    tag: str
    digest: str
    size: int = 0
    pushed_at: datetime = Field(default_factory=utcnow)

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.tag}"


def split_reference(reference: str) -> tuple[str, str]:
    """Split ``name:tag`` into its parts. The tag is after the last colon."""
    name, sep, tag = reference.rpartition(":")
    if not sep or not name or not tag or "/" in tag:
        raise ValueError(f"Invalid artifact reference: {reference!r}")
    return name, tag


class Severity(str, Enum):
    """Finding severity, ordered LOW < MEDIUM < HIGH < CRITICAL."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def at_least(self, threshold: Severity) -> bool:
        return self.rank >= threshold.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class Finding(BaseModel):
    """Single scanner finding."""

    id: str
    severity: Severity
    title: str = ""


class ScanTarget(BaseModel):
    """What a scanner is pointed at."""

    kind: Literal["source", "dependencies", "image"]
    ref: str
    path: str | None = None


class ScanReport(BaseModel):
    """Typed scanner result: pass/fail plus structured findings."""

    scanner: str
    target: ScanTarget
    findings: list[Finding] = Field(default_factory=list)
    passed: bool = True
    scanned_at: datetime = Field(default_factory=utcnow)

    @property
    def max_severity(self) -> Severity | None:
        if not self.findings:
            return None
        return max((f.severity for f in self.findings), key=lambda s: s.rank)

    def counts_by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts


# === PIPELINE RUNS ===

StagePolicy = Literal["required", "best-effort"]
StageStatus = Literal["pending", "running", "succeeded", "failed", "skipped"]
RunStatus = Literal["queued", "running", "succeeded", "failed"]

TERMINAL_STAGE_STATUSES: frozenset[str] = frozenset({"succeeded", "failed", "skipped"})
TERMINAL_RUN_STATUSES: frozenset[str] = frozenset({"succeeded", "failed"})


class StageResult(BaseModel):
    """Per-stage outcome within a PipelineRun."""

    name: str
    position: int
    policy: StagePolicy = "required"
    status: StageStatus = "pending"
    attempts: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    reason: str = ""
    error_type: str | None = None
    output: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGE_STATUSES


class PipelineRun(BaseModel):
    """One execution of the stage graph for a Revision.

    Stage results and the run status only move forward: once a stage or
    the run is terminal, it is never overwritten.
    """

    run_id: str
    revision: Revision
    status: RunStatus = "queued"
    stages: dict[str, StageResult] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    build_number: int | None = None
    artifact: Artifact | None = None
    manifest_version: int | None = None
    failed_stage: str | None = None
    reason: str = ""
    cancel_cause: str | None = None

    @property
    def workload(self) -> str:
        return self.revision.workload

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    @property
    def cancelled(self) -> bool:
        return self.status == "failed" and self.reason == "cancelled"

    def stage_order(self) -> list[str]:
        return [s.name for s in sorted(self.stages.values(), key=lambda s: s.position)]

    def set_stage(self, name: str, **changes: Any) -> StageResult:
        """Apply changes to a stage result, refusing to touch terminal results."""
        current = self.stages.get(name)
        if current is None:
            raise RunStateError(f"Run {self.run_id} has no stage '{name}'")
        if current.is_terminal:
            raise RunStateError(
                f"Stage '{name}' of run {self.run_id} is already {current.status}"
            )
        updated = current.model_copy(update=changes)
        self.stages[name] = updated
        return updated

    def start(self) -> None:
        if self.status != "queued":
            raise RunStateError(f"Run {self.run_id} cannot start from {self.status}")
        self.status = "running"
        self.started_at = utcnow()

    def finish(
        self,
        status: Literal["succeeded", "failed"],
        reason: str = "",
        failed_stage: str | None = None,
    ) -> None:
        if self.is_terminal:
            raise RunStateError(f"Run {self.run_id} is already {self.status}")
        self.status = status
        self.reason = reason
        self.failed_stage = failed_stage
        self.finished_at = utcnow()


# === MANIFESTS & RESOURCES ===


class ResourceKey(NamedTuple):
    """Resource identity: (kind, namespace, name)."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


class Resource(BaseModel):
    """A single declared or observed platform resource."""

    kind: str
    name: str
    namespace: str = "default"
    metadata: dict[str, Any] = Field(default_factory=dict)
    spec: dict[str, Any] = Field(default_factory=dict)
    status: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.kind, self.namespace, self.name)

    @property
    def annotations(self) -> dict[str, Any]:
        return self.metadata.get("annotations") or {}


class ResourceTree:
    """Resources keyed by (kind, namespace, name)."""

    def __init__(self, resources: dict[ResourceKey, Resource] | None = None) -> None:
        self._resources: dict[ResourceKey, Resource] = dict(resources or {})

    @classmethod
    def from_resources(cls, resources: list[Resource]) -> ResourceTree:
        tree = cls()
        for resource in resources:
            tree.add(resource)
        return tree

    def add(self, resource: Resource) -> None:
        self._resources[resource.key] = resource

    def get(self, key: ResourceKey) -> Resource | None:
        return self._resources.get(key)

    def keys(self) -> list[ResourceKey]:
        return sorted(self._resources)

    def items(self) -> list[tuple[ResourceKey, Resource]]:
        return [(k, self._resources[k]) for k in self.keys()]

    def subset(self, keys: list[ResourceKey]) -> ResourceTree:
        return ResourceTree({k: self._resources[k] for k in keys if k in self._resources})

    def copy(self) -> ResourceTree:
        return ResourceTree(
            {k: r.model_copy(deep=True) for k, r in self._resources.items()}
        )

    def __contains__(self, key: object) -> bool:
        return key in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(r for _, r in self.items())

    def __len__(self) -> int:
        return len(self._resources)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceTree):
            return NotImplemented
        return self._resources == other._resources


class ResourceSelector(BaseModel):
    """Restricts which live resources a platform query returns."""

    namespaces: list[str] = Field(default_factory=list)
    kinds: list[str] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    def matches(self, resource: Resource) -> bool:
        if self.namespaces and resource.namespace not in self.namespaces:
            return False
        if self.kinds and resource.kind not in self.kinds:
            return False
        labels = resource.metadata.get("labels") or {}
        return all(labels.get(k) == v for k, v in self.labels.items())


DEFAULT_MIN_REPLICAS = 1
DEFAULT_MAX_REPLICAS = 10
DEFAULT_TARGET_UTILIZATION = 70.0


class ScalingPolicy(BaseModel):
    """Replica bounds and utilization target for one workload.

    Unset bounds and target are filled in by ``resolved()``, usually from
    the process settings.
    """

    enabled: bool = True
    min_replicas: int | None = Field(default=None, ge=0)
    max_replicas: int | None = Field(default=None, ge=1)
    target_utilization: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_bounds(self) -> ScalingPolicy:
        if (
            self.min_replicas is not None
            and self.max_replicas is not None
            and self.min_replicas > self.max_replicas
        ):
            raise ValueError("min_replicas must be <= max_replicas")
        return self

    def resolved(
        self,
        min_replicas: int = DEFAULT_MIN_REPLICAS,
        max_replicas: int = DEFAULT_MAX_REPLICAS,
        target_utilization: float = DEFAULT_TARGET_UTILIZATION,
    ) -> ScalingPolicy:
        """Return a copy with every unset field taken from the arguments."""
        return ScalingPolicy(
            enabled=self.enabled,
            min_replicas=self.min_replicas if self.min_replicas is not None else min_replicas,
            max_replicas=self.max_replicas if self.max_replicas is not None else max_replicas,
            target_utilization=(
                self.target_utilization
                if self.target_utilization is not None
                else target_utilization
            ),
        )


class ManifestDocument(BaseModel):
    """Desired-state declaration for one workload."""

    workload: str
    artifact: str
    resources: list[Resource] = Field(default_factory=list)
    scaling: ScalingPolicy | None = None
    prune: bool = False
    ignore_paths: list[str] = Field(default_factory=list)

    def with_artifact(self, reference: str) -> ManifestDocument:
        """Return a copy where only the artifact reference differs."""
        return self.model_copy(update={"artifact": reference}, deep=True)


class ManifestRevision(BaseModel):
    """One committed version of a workload's manifest."""

    version: int
    document: ManifestDocument
    committed_at: datetime = Field(default_factory=utcnow)
    message: str = ""


# === RECONCILIATION ===

HealthStatus = Literal["Healthy", "Progressing", "Degraded", "Missing"]


class FieldChange(BaseModel):
    """A single field-level difference between desired and observed."""

    path: str
    desired: Any = None
    observed: Any = None


class DiffSummary(BaseModel):
    """Field-level diff of desired vs observed trees."""

    added: list[ResourceKey] = Field(default_factory=list)
    changed: list[ResourceKey] = Field(default_factory=list)
    extraneous: list[ResourceKey] = Field(default_factory=list)
    field_changes: dict[str, list[FieldChange]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """True when desired resources all match. Extraneous ones do not count."""
        return not self.added and not self.changed

    @property
    def out_of_sync(self) -> list[ResourceKey]:
        return sorted(self.added + self.changed)


class ReconcileSyncRecord(BaseModel):
    """Result of one reconciliation pass."""

    pass_id: int
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    status: str = "Unknown"
    manifest_versions: dict[str, int] = Field(default_factory=dict)
    diff: DiffSummary = Field(default_factory=DiffSummary)
    applied: list[ResourceKey] = Field(default_factory=list)
    pruned: list[ResourceKey] = Field(default_factory=list)
    unmanaged: list[ResourceKey] = Field(default_factory=list)
    failed_resources: list[ResourceKey] = Field(default_factory=list)
    waves_applied: list[int] = Field(default_factory=list)
    self_healed: bool = False
    reason: str = ""


# === AUTOSCALING ===


class MetricSample(BaseModel):
    """Observed utilization averaged across replicas."""

    value: float
    replicas: int
    sampled_at: datetime = Field(default_factory=utcnow)


class ScalingDecision(BaseModel):
    """Autoscaler output for one evaluation tick."""

    workload: str
    timestamp: datetime = Field(default_factory=utcnow)
    observed: float | None = None
    target: float
    current_replicas: int | None = None
    computed_replicas: int | None = None
    chosen_replicas: int | None = None
    applied: bool = False
    reason: str = ""
