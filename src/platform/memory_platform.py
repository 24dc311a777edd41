# src/platform/memory_platform.py — v1
"""In-memory cluster simulator implementing both platform interfaces.

Scalable kinds get a synthesized status (replicas / readyReplicas), and
Services get a runtime-assigned clusterIP, mimicking fields the platform
owns. Failure, unhealthiness and out-of-band drift can be injected.
"""

from __future__ import annotations

import copy
import itertools
import logging
from typing import Any, Callable

from shipyard.core.errors import ApplyPartialFailure, PlatformUnreachable
from shipyard.core.models import (
    MetricSample,
    Resource,
    ResourceKey,
    ResourceSelector,
    ResourceTree,
)
from shipyard.platform.base_platform import BaseMetricsSource, BasePlatform

logger = logging.getLogger(__name__)

SCALABLE_KINDS = frozenset({"Deployment", "StatefulSet", "ReplicaSet"})


class MemoryPlatform(BasePlatform, BaseMetricsSource):
    """Dict-backed platform.

    Attributes:
        calls: Ordered log of platform API calls ("get_observed", "apply", ...).
        applied_batches: Keys of each apply() call, in order.
    """

    def __init__(self, resources: list[Resource] | None = None) -> None:
        self._resources: dict[ResourceKey, Resource] = {}
        self._metrics: dict[str, float] = {}
        self._ip_counter = itertools.count(10)
        self._version_counter = itertools.count(1)
        self.reachable = True
        self.metrics_reachable = True
        self.unhealthy: set[ResourceKey] = set()
        self.reject: set[ResourceKey] = set()
        self.calls: list[str] = []
        self.applied_batches: list[list[ResourceKey]] = []
        self.deleted: list[ResourceKey] = []
        self.replica_updates: list[tuple[str, int]] = []
        for resource in resources or []:
            self._store(resource)

    # --- BasePlatform ---

    async def get_observed(self, selector: ResourceSelector | None = None) -> ResourceTree:
        self._record("get_observed")
        tree = ResourceTree()
        for resource in self._resources.values():
            if selector is None or selector.matches(resource):
                tree.add(self._with_status(resource))
        return tree

    async def apply(self, tree: ResourceTree) -> None:
        self._record("apply")
        keys = tree.keys()
        self.applied_batches.append(keys)
        failed: list[ResourceKey] = []
        for key, resource in tree.items():
            if key in self.reject:
                failed.append(key)
                continue
            self._store(resource)
        if failed:
            raise ApplyPartialFailure(failed)

    async def delete(self, keys: list[ResourceKey]) -> None:
        self._record("delete")
        for key in keys:
            if self._resources.pop(key, None) is not None:
                self.deleted.append(key)

    async def set_replicas(self, workload: str, count: int) -> None:
        self._record("set_replicas")
        resource = self._find_scalable(workload)
        if resource is None:
            raise PlatformUnreachable(f"No scalable resource named '{workload}'")
        resource.spec["replicas"] = count
        self.replica_updates.append((workload, count))

    # --- BaseMetricsSource ---

    async def utilization(self, workload: str) -> MetricSample:
        if not self.metrics_reachable:
            raise PlatformUnreachable("metrics backend unreachable")
        if workload not in self._metrics:
            raise PlatformUnreachable(f"No metrics for workload '{workload}'")
        resource = self._find_scalable(workload)
        replicas = int(resource.spec.get("replicas", 1)) if resource else 1
        return MetricSample(value=self._metrics[workload], replicas=replicas)

    # --- Simulation hooks ---

    def set_metric(self, workload: str, value: float) -> None:
        self._metrics[workload] = value

    def mutate(self, key: ResourceKey, change: Callable[[Resource], None]) -> None:
        """Apply an out-of-band edit to a live resource (manual drift)."""
        change(self._resources[key])

    def replicas(self, workload: str) -> int | None:
        resource = self._find_scalable(workload)
        if resource is None:
            return None
        return int(resource.spec.get("replicas", 1))

    def resource(self, key: ResourceKey) -> Resource | None:
        return self._resources.get(key)

    def dump(self) -> list[dict[str, Any]]:
        return [r.model_dump(mode="json") for _, r in sorted(self._resources.items())]

    # --- Internals ---

    def _record(self, call: str) -> None:
        if not self.reachable:
            raise PlatformUnreachable("platform API unreachable")
        self.calls.append(call)

    def _store(self, resource: Resource) -> None:
        incoming = resource.model_copy(deep=True)
        incoming.status = {}
        existing = self._resources.get(incoming.key)

        # Fields the platform owns survive an apply that does not set them.
        if existing is not None and incoming.kind in SCALABLE_KINDS:
            if "replicas" not in incoming.spec and "replicas" in existing.spec:
                incoming.spec["replicas"] = existing.spec["replicas"]
        if incoming.kind == "Service" and "clusterIP" not in incoming.spec:
            if existing is not None and "clusterIP" in existing.spec:
                incoming.spec["clusterIP"] = existing.spec["clusterIP"]
            else:
                incoming.spec["clusterIP"] = f"10.0.0.{next(self._ip_counter)}"

        metadata = copy.deepcopy(incoming.metadata)
        metadata["resourceVersion"] = str(next(self._version_counter))
        incoming.metadata = metadata
        self._resources[incoming.key] = incoming

    def _with_status(self, resource: Resource) -> Resource:
        observed = resource.model_copy(deep=True)
        unhealthy = resource.key in self.unhealthy
        if resource.kind in SCALABLE_KINDS:
            replicas = int(resource.spec.get("replicas", 1))
            observed.status = {
                "replicas": replicas,
                "readyReplicas": 0 if unhealthy else replicas,
            }
        elif unhealthy:
            observed.status = {"health": "Degraded"}
        return observed

    def _find_scalable(self, workload: str) -> Resource | None:
        for key in sorted(self._resources):
            resource = self._resources[key]
            if resource.kind in SCALABLE_KINDS and resource.name == workload:
                return resource
        return None
