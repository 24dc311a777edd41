# src/reconciler/diff.py — v1
"""Field-level diff between desired and observed resource trees.

Only ``metadata.labels``, ``metadata.annotations`` and ``spec`` take part
in the comparison. Paths are dotted, list elements use their index
(``spec.template.spec.containers.0.image``). Ignore patterns are fnmatch
globs over those paths; a pattern also ignores everything below it, so
``status`` covers ``status.readyReplicas``.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Any

from shipyard.core.models import DiffSummary, FieldChange, Resource, ResourceTree
from shipyard.reconciler.desired import DesiredState

_COMPARED_METADATA = ("labels", "annotations")


def is_ignored(path: str, patterns: list[str]) -> bool:
    for pattern in patterns:
        if fnmatchcase(path, pattern) or fnmatchcase(path, pattern + ".*"):
            return True
    return False


def _compare(
    desired: Any,
    observed: Any,
    path: str,
    patterns: list[str],
    changes: list[FieldChange],
) -> None:
    if path and is_ignored(path, patterns):
        return

    if isinstance(desired, dict) and isinstance(observed, dict):
        for key in sorted(set(desired) | set(observed), key=str):
            child = f"{path}.{key}" if path else str(key)
            _compare(desired.get(key), observed.get(key), child, patterns, changes)
        return

    if isinstance(desired, list) and isinstance(observed, list):
        for idx in range(max(len(desired), len(observed))):
            _compare(
                desired[idx] if idx < len(desired) else None,
                observed[idx] if idx < len(observed) else None,
                f"{path}.{idx}",
                patterns,
                changes,
            )
        return

    if desired != observed:
        changes.append(FieldChange(path=path, desired=desired, observed=observed))


def diff_resource(
    desired: Resource,
    observed: Resource,
    ignore_paths: list[str] | None = None,
) -> list[FieldChange]:
    """Field changes needed to turn ``observed`` into ``desired``."""
    patterns = list(ignore_paths or [])
    changes: list[FieldChange] = []
    for section in _COMPARED_METADATA:
        _compare(
            desired.metadata.get(section) or {},
            observed.metadata.get(section) or {},
            f"metadata.{section}",
            patterns,
            changes,
        )
    _compare(desired.spec, observed.spec, "spec", patterns, changes)
    return changes


def compute_diff(desired: DesiredState, observed: ResourceTree) -> DiffSummary:
    """Diff every desired resource against the live tree.

    Live resources absent from the desired tree are reported as extraneous;
    they never make the diff non-empty on their own.
    """
    summary = DiffSummary()
    for key, resource in desired.tree.items():
        live = observed.get(key)
        if live is None:
            summary.added.append(key)
            continue
        changes = diff_resource(resource, live, desired.ignore_paths.get(key))
        if changes:
            summary.changed.append(key)
            summary.field_changes[str(key)] = changes

    summary.extraneous = [k for k in observed.keys() if k not in desired.tree]
    return summary
