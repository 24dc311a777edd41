# src/tracking/exporter.py — v1
"""Export runs, sync records and scaling decisions to JSON, CSV and text."""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path

from shipyard.core.models import PipelineRun, ReconcileSyncRecord, ScalingDecision

logger = logging.getLogger(__name__)


def _write_json(payload: object, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def export_runs_json(runs: list[PipelineRun], path: Path) -> None:
    """Export a run table as a JSON list.

    Args:
        runs: Runs in the order they should appear.
        path: Output file path.
    """
    _write_json([run.model_dump(mode="json") for run in runs], path)
    logger.debug("Exported %d runs to %s", len(runs), path)


def load_runs_json(path: Path) -> list[PipelineRun]:
    """Read a run table written by ``export_runs_json``."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{path} does not contain a list of runs")
    return [PipelineRun.model_validate(item) for item in payload]


def export_sync_history_json(records: list[ReconcileSyncRecord], path: Path) -> None:
    _write_json([record.model_dump(mode="json") for record in records], path)


def export_decisions_json(decisions: list[ScalingDecision], path: Path) -> None:
    _write_json([decision.model_dump(mode="json") for decision in decisions], path)


def export_decisions_csv(decisions: list[ScalingDecision], path: Path) -> None:
    """Export scaling decisions as CSV for replay or spreadsheet analysis.

    Args:
        decisions: Decisions, oldest first.
        path: Output file path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames = [
        "workload", "timestamp", "observed", "target", "current_replicas",
        "computed_replicas", "chosen_replicas", "applied", "reason",
    ]

    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for decision in decisions:
            row = decision.model_dump()
            row["timestamp"] = row["timestamp"].isoformat()
            writer.writerow(row)


def runs_summary(runs: list[PipelineRun]) -> str:
    """Human-readable run table, one block per run.

    Args:
        runs: Runs to describe.

    Returns:
        Formatted summary string.
    """
    if not runs:
        return "No pipeline runs."

    lines: list[str] = [f"=== Pipeline Runs ({len(runs)}) ==="]
    for run in runs:
        artifact = run.artifact.reference if run.artifact else "-"
        lines.append(
            f"{run.run_id}  {run.revision.revision_id:30s}  {run.status:9s}  {artifact}"
        )
        if run.status == "failed":
            cause = f" ({run.cancel_cause})" if run.cancel_cause else ""
            stage = run.failed_stage or "-"
            lines.append(f"  failed at {stage}: {run.reason}{cause}")
        for name in run.stage_order():
            stage_result = run.stages[name]
            marker = {
                "succeeded": "✓",
                "failed": "✗",
                "skipped": "-",
            }.get(stage_result.status, " ")
            detail = f"  {stage_result.reason}" if stage_result.reason else ""
            lines.append(
                f"    {marker} {name:16s} {stage_result.status:9s} "
                f"attempts={stage_result.attempts}{detail}"
            )
    return "\n".join(lines)


def sync_summary(record: ReconcileSyncRecord) -> str:
    """Human-readable description of one reconciliation pass."""
    lines: list[str] = [
        f"=== Reconcile Pass {record.pass_id}: {record.status} ===",
        "Manifests : "
        + (", ".join(f"{w}@v{v}" for w, v in sorted(record.manifest_versions.items())) or "-"),
        f"Added     : {len(record.diff.added)}",
        f"Changed   : {len(record.diff.changed)}",
        f"Applied   : {len(record.applied)} (waves {record.waves_applied or '-'})",
        f"Pruned    : {len(record.pruned)}",
        f"Unmanaged : {len(record.unmanaged)}",
    ]
    if record.self_healed:
        lines.append("Self-heal : reverted out-of-band drift")
    if record.reason:
        lines.append(f"Reason    : {record.reason}")
    for key in record.failed_resources:
        lines.append(f"  ✗ {key}")
    for key, changes in sorted(record.diff.field_changes.items()):
        lines.append(f"  ~ {key}")
        for change in changes:
            lines.append(f"      {change.path}: {change.observed!r} -> {change.desired!r}")
    return "\n".join(lines)


def decisions_summary(decisions: list[ScalingDecision]) -> str:
    if not decisions:
        return "No scaling decisions."
    lines = ["=== Scaling Decisions ==="]
    for d in decisions:
        observed = f"{d.observed:.1f}" if d.observed is not None else "-"
        lines.append(
            f"{d.timestamp:%H:%M:%S}  {d.workload:20s} observed={observed:>6s} "
            f"target={d.target:.1f} {d.current_replicas}->{d.chosen_replicas} "
            f"{'applied' if d.applied else 'held'}  {d.reason}"
        )
    return "\n".join(lines)
