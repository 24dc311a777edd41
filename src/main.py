# src/main.py — v1
"""CLI entry point — reconcile, scale, trigger, runs commands.

Usage:
    shipyard reconcile <manifest_dir> <state.json> [--sync] [--dry-run]
    shipyard scale <workload> <state.json> [--observed N --current N] [--apply]
    shipyard trigger <workload@commit#build> <manifest_dir> [--export runs.json]
    shipyard runs <runs.json> [--workload W] [--status S]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from shipyard.version import __version__

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        from shipyard.config.settings import load_settings

        args.settings = load_settings()
    except Exception as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    _setup_logging(args.settings, args.verbose)

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shipyard",
        description=f"shipyard v{__version__} — delivery pipeline, GitOps reconciler, autoscaler",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- reconcile ---
    p_reconcile = subparsers.add_parser(
        "reconcile", help="Run one reconciliation pass",
    )
    p_reconcile.add_argument("manifests", type=Path, help="YAML manifest directory")
    p_reconcile.add_argument("state", type=Path, help="JSON cluster state file")
    p_reconcile.add_argument(
        "--sync", action="store_true",
        help="Force a sync even when auto-sync or self-heal is off",
    )
    p_reconcile.add_argument(
        "--dry-run", action="store_true",
        help="Only diff; never apply or prune",
    )
    p_reconcile.set_defaults(func=_cmd_reconcile)

    # --- scale ---
    p_scale = subparsers.add_parser(
        "scale", help="Compute (and optionally apply) a scaling decision",
    )
    p_scale.add_argument("workload", help="Workload name")
    p_scale.add_argument("state", type=Path, help="JSON cluster state file")
    p_scale.add_argument("--observed", type=float, default=None, help="Observed utilization")
    p_scale.add_argument("--current", type=int, default=None, help="Current replicas")
    p_scale.add_argument("--min", dest="min_replicas", type=int, default=None)
    p_scale.add_argument("--max", dest="max_replicas", type=int, default=None)
    p_scale.add_argument("--target", type=float, default=None, help="Target utilization")
    p_scale.add_argument(
        "--apply", action="store_true",
        help="Set the computed replica count on the state file",
    )
    p_scale.set_defaults(func=_cmd_scale)

    # --- trigger ---
    p_trigger = subparsers.add_parser(
        "trigger", help="Run the pipeline for one revision",
    )
    p_trigger.add_argument("revision", help="Revision id: workload@commit#build")
    p_trigger.add_argument("manifests", type=Path, help="YAML manifest directory")
    p_trigger.add_argument(
        "--export", type=Path, default=None,
        help="Append the run to this JSON run table",
    )
    p_trigger.set_defaults(func=_cmd_trigger)

    # --- runs ---
    p_runs = subparsers.add_parser(
        "runs", help="Show an exported run table",
    )
    p_runs.add_argument("file", type=Path, help="JSON run table")
    p_runs.add_argument("--workload", default=None)
    p_runs.add_argument(
        "--status", default=None, choices=["queued", "running", "succeeded", "failed"],
    )
    p_runs.set_defaults(func=_cmd_runs)

    return parser


async def _cmd_reconcile(args: argparse.Namespace) -> int:
    """Diff a manifest directory against a state file and converge it."""
    from shipyard.manifests.yaml_repository import YamlManifestRepository
    from shipyard.platform.json_platform import JsonFilePlatform
    from shipyard.reconciler.reconciler import GitOpsReconciler
    from shipyard.reconciler.state_machine import SyncStatus
    from shipyard.tracking.exporter import sync_summary

    if not args.manifests.is_dir():
        logger.error("Not a directory: %s", args.manifests)
        return 1

    settings = args.settings
    if args.dry_run:
        settings = settings.model_copy(update={"auto_sync": False})

    reconciler = GitOpsReconciler.from_settings(
        YamlManifestRepository(args.manifests), JsonFilePlatform(args.state), settings
    )
    record = await reconciler.reconcile_once(force=args.sync and not args.dry_run)
    print(sync_summary(record))
    return 0 if record.status == SyncStatus.IN_SYNC.value else 2


async def _cmd_scale(args: argparse.Namespace) -> int:
    """Compute one scaling decision for a workload."""
    from shipyard.autoscaler.policy import compute_desired_replicas
    from shipyard.core.models import ScalingDecision
    from shipyard.platform.json_platform import JsonFilePlatform
    from shipyard.tracking.exporter import decisions_summary

    settings = args.settings
    platform = JsonFilePlatform(args.state)
    min_replicas = args.min_replicas if args.min_replicas is not None else settings.min_replicas
    max_replicas = args.max_replicas if args.max_replicas is not None else settings.max_replicas
    target = args.target if args.target is not None else settings.target_utilization

    if args.observed is not None:
        observed = args.observed
        current = args.current if args.current is not None else platform.replicas(args.workload)
    else:
        sample = await platform.utilization(args.workload)
        observed = sample.value
        current = args.current if args.current is not None else sample.replicas
    if current is None:
        logger.error("Unknown current replica count for %s", args.workload)
        return 1

    computed = compute_desired_replicas(current, observed, target, min_replicas, max_replicas)
    decision = ScalingDecision(
        workload=args.workload,
        observed=observed,
        target=target,
        current_replicas=current,
        computed_replicas=computed,
        chosen_replicas=computed,
        reason="within target" if computed == current else "proportional",
    )
    if args.apply and computed != current:
        await platform.set_replicas(args.workload, computed)
        decision.applied = True

    print(decisions_summary([decision]))
    return 0


async def _cmd_trigger(args: argparse.Namespace) -> int:
    """Run the pipeline for one revision and report the run."""
    from shipyard.api.facade import build_pipeline_services
    from shipyard.core.models import Revision
    from shipyard.manifests.yaml_repository import YamlManifestRepository
    from shipyard.pipeline.engine import PipelineEngine
    from shipyard.tracking.exporter import export_runs_json, load_runs_json, runs_summary

    revision = Revision.parse(args.revision)
    services = build_pipeline_services(
        args.settings, repository=YamlManifestRepository(args.manifests)
    )
    engine = PipelineEngine.from_settings(services, args.settings)
    try:
        run = await engine.submit(revision)
    finally:
        await engine.close(cancel_running=True)

    print(runs_summary([run]))
    if args.export is not None:
        existing = load_runs_json(args.export) if args.export.exists() else []
        export_runs_json(existing + [run], args.export)
    return 0 if run.status == "succeeded" else 1


async def _cmd_runs(args: argparse.Namespace) -> int:
    """Display an exported run table."""
    from shipyard.tracking.exporter import load_runs_json, runs_summary

    if not args.file.exists():
        logger.error("File not found: %s", args.file)
        return 1

    runs = load_runs_json(args.file)
    if args.workload:
        runs = [r for r in runs if r.workload == args.workload]
    if args.status:
        runs = [r for r in runs if r.status == args.status]
    print(runs_summary(runs))
    return 0


def _setup_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging for CLI usage."""
    from shipyard.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
