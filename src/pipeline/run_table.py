# src/pipeline/run_table.py — v1
"""Explicit table of pipeline runs, keyed by run ID and workload.

Runs are never removed; the table is the queryable history of what
happened and why.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from shipyard.core.errors import RunStateError
from shipyard.core.models import PipelineRun, Revision, RunStatus, StageResult, StagePolicy


def generate_run_id(timestamp: datetime | None = None) -> str:
    """Generate a run_id: yyyymmdd_hhmmss_{uuid4_short}."""
    ts = timestamp or datetime.now(timezone.utc)
    return f"{ts.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


class RunTable:
    """In-memory run table."""

    def __init__(self) -> None:
        self._runs: dict[str, PipelineRun] = {}
        self._by_workload: dict[str, list[str]] = {}

    def create(
        self,
        revision: Revision,
        stages: list[tuple[str, StagePolicy]],
    ) -> PipelineRun:
        """Register a queued run with every stage pending.

        Args:
            revision: Triggering revision.
            stages: (name, policy) in flat execution order.
        """
        run_id = generate_run_id()
        while run_id in self._runs:
            run_id = generate_run_id()
        run = PipelineRun(
            run_id=run_id,
            revision=revision,
            stages={
                name: StageResult(name=name, position=idx, policy=policy)
                for idx, (name, policy) in enumerate(stages)
            },
        )
        self._runs[run_id] = run
        self._by_workload.setdefault(revision.workload, []).append(run_id)
        return run

    def get(self, run_id: str) -> PipelineRun:
        try:
            return self._runs[run_id]
        except KeyError:
            raise RunStateError(f"Unknown run: {run_id}") from None

    def list_runs(
        self,
        workload: str | None = None,
        status: RunStatus | None = None,
    ) -> list[PipelineRun]:
        """Runs in creation order, optionally filtered."""
        if workload is not None:
            runs = [self._runs[r] for r in self._by_workload.get(workload, [])]
        else:
            runs = sorted(self._runs.values(), key=lambda r: r.created_at)
        if status is not None:
            runs = [r for r in runs if r.status == status]
        return runs

    def active(self, workload: str) -> PipelineRun | None:
        """The in-flight run for a workload, if any."""
        running = self.list_runs(workload, status="running")
        return running[0] if running else None

    def queued(self, workload: str) -> list[PipelineRun]:
        return self.list_runs(workload, status="queued")

    def latest(self, workload: str) -> PipelineRun | None:
        ids = self._by_workload.get(workload)
        return self._runs[ids[-1]] if ids else None

    def workloads(self) -> list[str]:
        return sorted(self._by_workload)

    def __len__(self) -> int:
        return len(self._runs)
