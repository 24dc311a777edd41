# src/core/errors.py — v1
"""Error taxonomy shared by the pipeline engine, reconciler and autoscaler.

Each error class carries a ``retryable`` flag. Stages retry only
TransientInfraError locally; everything else surfaces as a terminal
failure with the originating stage and reason recorded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shipyard.core.models import Artifact, ResourceKey


class ShipyardError(Exception):
    """Base class for all shipyard errors."""

    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for run records and log payloads."""
        return {
            "type": type(self).__name__,
            "message": str(self),
            "retryable": self.retryable,
        }


class TransientInfraError(ShipyardError):
    """Network failure, registry unavailable, or any retryable infra fault."""

    retryable = True


class StageTimeout(TransientInfraError):
    """An external call exceeded its timeout."""


class PolicyViolation(ShipyardError):
    """Scan or quality-gate failure. Requires a new revision."""

    def __init__(self, message: str, findings: list[Any] | None = None) -> None:
        super().__init__(message)
        self.findings = findings or []


class ConflictError(ShipyardError):
    """Optimistic concurrency conflict on a manifest write."""

    def __init__(self, workload: str, expected: int, actual: int) -> None:
        self.workload = workload
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Manifest '{workload}' is at version {actual}, expected {expected}"
        )


class AlreadyExists(ShipyardError):
    """Artifact tag already pushed. Tags are immutable."""

    def __init__(self, artifact: Artifact) -> None:
        self.artifact = artifact
        super().__init__(f"Artifact {artifact.reference} already exists")


class ArtifactNotFound(ShipyardError):
    """Referenced artifact is not present in the store."""


class ManifestNotFound(ShipyardError):
    """No manifest document stored for the workload."""


class PlatformUnreachable(ShipyardError):
    """Live platform state cannot be queried or mutated."""


class ApplyPartialFailure(ShipyardError):
    """Platform accepted only part of an apply request."""

    def __init__(self, failed: list[ResourceKey], message: str = "") -> None:
        self.failed = list(failed)
        detail = ", ".join(str(k) for k in self.failed)
        super().__init__(message or f"Apply failed for: {detail}")


class Cancelled(ShipyardError):
    """Run cancelled by an operator or superseded by a newer revision."""

    def __init__(self, reason: str = "cancelled") -> None:
        self.reason = reason
        super().__init__(reason)


class StageGraphError(ShipyardError):
    """Stage graph is invalid (cycle or missing dependency)."""


class RunStateError(ShipyardError):
    """Illegal transition on a run or stage record."""


class ConfigurationError(ShipyardError):
    """Configuration is internally inconsistent."""
