# src/reconciler/health.py — v1
"""Health assessment of live resources."""

from __future__ import annotations

from shipyard.core.models import HealthStatus, Resource

_REPLICATED_KINDS = frozenset({"Deployment", "StatefulSet", "ReplicaSet"})
_EXPLICIT = ("Healthy", "Progressing", "Degraded")


def assess_health(resource: Resource | None) -> HealthStatus:
    """Classify one live resource.

    An explicit ``status.health`` wins. Replicated workloads are healthy
    once ready replicas reach the desired count, DaemonSets once every
    scheduled pod is ready, Jobs once they succeed. Everything else is
    healthy as soon as it exists.
    """
    if resource is None:
        return "Missing"

    status = resource.status or {}
    explicit = status.get("health")
    if explicit in _EXPLICIT:
        return explicit

    if resource.kind in _REPLICATED_KINDS:
        if "readyReplicas" not in status and "replicas" not in status:
            return "Progressing"
        desired = int(resource.spec.get("replicas", status.get("replicas", 1)))
        ready = int(status.get("readyReplicas", 0))
        return "Healthy" if ready >= desired else "Progressing"

    if resource.kind == "DaemonSet":
        scheduled = status.get("desiredNumberScheduled")
        if scheduled is None:
            return "Healthy"
        return "Healthy" if status.get("numberReady", 0) >= scheduled else "Progressing"

    if resource.kind == "Job":
        if status.get("failed"):
            return "Degraded"
        return "Healthy" if status.get("succeeded") else "Progressing"

    return "Healthy"
