# src/reconciler/waves.py — v1
"""Sync waves: apply order by resource kind.

Namespaces first, then configuration and access objects, stateful
workloads, services, stateless workloads, and finally ingress and
autoscaling objects. A ``sync-wave`` annotation overrides the kind default.
"""

from __future__ import annotations

import logging

from shipyard.core.models import Resource, ResourceTree

logger = logging.getLogger(__name__)

SYNC_WAVE_ANNOTATION = "sync-wave"
DEFAULT_WAVE = 4

KIND_WAVES: dict[str, int] = {
    "Namespace": 0,
    "ConfigMap": 1,
    "Secret": 1,
    "ServiceAccount": 1,
    "PersistentVolumeClaim": 1,
    "Role": 1,
    "RoleBinding": 1,
    "StatefulSet": 2,
    "Service": 3,
    "Deployment": 4,
    "DaemonSet": 4,
    "Job": 4,
    "CronJob": 4,
    "Ingress": 5,
    "HorizontalPodAutoscaler": 5,
}


def wave_of(resource: Resource) -> int:
    override = resource.annotations.get(SYNC_WAVE_ANNOTATION)
    if override is not None:
        try:
            return int(override)
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring invalid %s annotation %r on %s",
                SYNC_WAVE_ANNOTATION, override, resource.key,
            )
    return KIND_WAVES.get(resource.kind, DEFAULT_WAVE)


def group_into_waves(tree: ResourceTree) -> list[tuple[int, ResourceTree]]:
    """Split a tree into (wave, subtree) pairs, lowest wave first."""
    waves: dict[int, ResourceTree] = {}
    for resource in tree:
        waves.setdefault(wave_of(resource), ResourceTree()).add(resource)
    return sorted(waves.items(), key=lambda item: item[0])
