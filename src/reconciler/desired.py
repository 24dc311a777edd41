# src/reconciler/desired.py — v1
"""Render the desired resource tree from the manifest set.

Every rendered resource carries a tracking label naming the workload that
declares it, so extraneous live resources can later be attributed to a
manifest (and pruned only if that manifest opts in).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from shipyard.core.models import ManifestDocument, Resource, ResourceKey, ResourceTree

logger = logging.getLogger(__name__)

TRACKING_LABEL = "shipyard.io/workload"

SCALED_KINDS = frozenset({"Deployment", "StatefulSet", "ReplicaSet"})

# Where the pod template lives, per workload kind.
_POD_SPEC_PATHS: dict[str, tuple[str, ...]] = {
    "Deployment": ("template", "spec"),
    "StatefulSet": ("template", "spec"),
    "DaemonSet": ("template", "spec"),
    "ReplicaSet": ("template", "spec"),
    "Job": ("template", "spec"),
    "CronJob": ("jobTemplate", "spec", "template", "spec"),
}


@dataclass
class DesiredState:
    """Rendered desired tree plus the per-resource facts the diff needs."""

    tree: ResourceTree = field(default_factory=ResourceTree)
    owners: dict[ResourceKey, str] = field(default_factory=dict)
    ignore_paths: dict[ResourceKey, list[str]] = field(default_factory=dict)
    versions: dict[str, int] = field(default_factory=dict)
    prune: dict[str, bool] = field(default_factory=dict)

    def keys_of(self, workload: str) -> list[ResourceKey]:
        return sorted(k for k, owner in self.owners.items() if owner == workload)


def owner_of(resource: Resource) -> str | None:
    """Workload named by a live resource's tracking label."""
    labels = resource.metadata.get("labels") or {}
    return labels.get(TRACKING_LABEL)


def inject_image(resource: Resource, reference: str) -> int:
    """Set every container image of a workload resource. Returns the count."""
    path = _POD_SPEC_PATHS.get(resource.kind)
    if path is None:
        return 0
    node: Any = resource.spec
    for part in path:
        if not isinstance(node, dict) or part not in node:
            return 0
        node = node[part]
    containers = node.get("containers") if isinstance(node, dict) else None
    if not isinstance(containers, list):
        return 0
    for container in containers:
        container["image"] = reference
    return len(containers)


def render_desired(
    manifests: dict[str, tuple[ManifestDocument, int]],
    ignore_paths: list[str] | None = None,
) -> DesiredState:
    """Build DesiredState from ``{workload: (document, version)}``."""
    state = DesiredState()
    base_ignores = list(ignore_paths or [])

    for workload in sorted(manifests):
        document, version = manifests[workload]
        state.versions[workload] = version
        state.prune[workload] = document.prune
        scaled = document.scaling is not None and document.scaling.enabled

        for declared in document.resources:
            resource = declared.model_copy(deep=True)
            key = resource.key
            if key in state.tree:
                logger.warning(
                    "Resource %s is declared by both %s and %s; keeping %s",
                    key, state.owners[key], workload, state.owners[key],
                )
                continue

            labels = dict(resource.metadata.get("labels") or {})
            labels[TRACKING_LABEL] = workload
            resource.metadata = {**resource.metadata, "labels": labels}
            resource.status = {}
            inject_image(resource, document.artifact)

            ignores = base_ignores + list(document.ignore_paths)
            if scaled and resource.kind in SCALED_KINDS and resource.name == workload:
                resource.spec.pop("replicas", None)
                ignores.append("spec.replicas")

            state.tree.add(resource)
            state.owners[key] = workload
            state.ignore_paths[key] = ignores

    return state
