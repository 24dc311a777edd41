# src/pipeline/stage.py — v1
"""Standard stage interface for pipeline plugins.

A stage is a named unit of work with declared upstream dependencies and a
policy. ``required`` stages abort the run on failure; ``best-effort``
stages record their failure and let the run continue.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from shipyard.core.models import StagePolicy

if TYPE_CHECKING:
    from shipyard.pipeline.context import StageContext


class BaseStage(ABC):
    """Standard interface for all pipeline stages."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique stage identifier (e.g., 'compile', 'image-scan')."""

    @property
    def dependencies(self) -> list[str]:
        """Names of stages that must succeed before this one runs."""
        return []

    @property
    def policy(self) -> StagePolicy:
        return "required"

    @property
    def retryable(self) -> bool:
        """Whether transient infrastructure errors are retried."""
        return True

    @property
    def timeout_s(self) -> float | None:
        """Per-attempt timeout; None falls back to the engine default."""
        return None

    @abstractmethod
    async def execute(self, ctx: StageContext) -> dict[str, Any] | None:
        """Run the stage.

        Returns:
            Optional output recorded on the stage result.

        Raises:
            TransientInfraError: Retryable infrastructure fault.
            PolicyViolation: Terminal rejection (scan, gate, tests).
        """

    async def release(self, ctx: StageContext) -> None:
        """Release external resources held by an interrupted execution."""


StageFn = Callable[["StageContext"], Awaitable["dict[str, Any] | None"]]


class FunctionStage(BaseStage):
    """Adapter turning an async function into a stage."""

    def __init__(
        self,
        name: str,
        fn: StageFn,
        dependencies: list[str] | None = None,
        policy: StagePolicy = "required",
        retryable: bool = True,
        timeout_s: float | None = None,
        release: StageFn | None = None,
    ) -> None:
        self._name = name
        self._fn = fn
        self._dependencies = list(dependencies or [])
        self._policy = policy
        self._retryable = retryable
        self._timeout_s = timeout_s
        self._release = release

    @property
    def name(self) -> str:
        return self._name

    @property
    def dependencies(self) -> list[str]:
        return list(self._dependencies)

    @property
    def policy(self) -> StagePolicy:
        return self._policy

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def timeout_s(self) -> float | None:
        return self._timeout_s

    async def execute(self, ctx: StageContext) -> dict[str, Any] | None:
        return await self._fn(ctx)

    async def release(self, ctx: StageContext) -> None:
        if self._release is not None:
            await self._release(ctx)


def dependency_map(stages: list[BaseStage]) -> dict[str, list[str]]:
    """Dependency map for a list of stages, honoring declared dependencies."""
    return {stage.name: stage.dependencies for stage in stages}
