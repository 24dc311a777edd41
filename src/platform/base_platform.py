# src/platform/base_platform.py — v1
"""Platform state query/apply and metrics interfaces.

Consumed by the reconciler (observe, apply, delete) and the autoscaler
(metrics, set_replicas). Implementations raise PlatformUnreachable when
the platform API cannot be reached at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipyard.core.models import MetricSample, ResourceKey, ResourceSelector, ResourceTree


class BasePlatform(ABC):
    """Live cluster state as seen through the platform API."""

    @abstractmethod
    async def get_observed(self, selector: ResourceSelector | None = None) -> ResourceTree:
        """Return live resources matching ``selector`` (all if None)."""

    @abstractmethod
    async def apply(self, tree: ResourceTree) -> None:
        """Create or update every resource in ``tree``.

        Raises:
            ApplyPartialFailure: Listing the resources that were rejected.
        """

    @abstractmethod
    async def delete(self, keys: list[ResourceKey]) -> None:
        """Delete the given resources. Missing ones are ignored."""

    @abstractmethod
    async def set_replicas(self, workload: str, count: int) -> None:
        """Set the replica count of the workload's scalable resource."""


class BaseMetricsSource(ABC):
    """Source of per-workload utilization metrics."""

    @abstractmethod
    async def utilization(self, workload: str) -> MetricSample:
        """Return current utilization (percent, averaged across replicas).

        Raises:
            PlatformUnreachable: If the metrics backend cannot be queried.
        """
