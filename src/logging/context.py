# src/logging/context.py — v1
"""Contextual logging support — attach workload, run_id, stage to log records.

Control loops run as concurrent asyncio tasks; each task gets its own copy
of these variables, so a pipeline worker's context never leaks into the
reconciler's records.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_workload: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "workload", default=None
)
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_loop: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "loop", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    loop: str | None = None
    workload: str | None = None
    run_id: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        loop=_loop.get(),
        workload=_workload.get(),
        run_id=_run_id.get(),
        stage=_stage.get(),
    )


def set_loop_context(loop: str, workload: str | None = None) -> None:
    """Name the control loop (pipeline, reconciler, autoscaler) for this task."""
    _loop.set(loop)
    _workload.set(workload)


def set_run_context(workload: str, run_id: str) -> None:
    """Set run-level context (called once per pipeline run)."""
    _workload.set(workload)
    _run_id.set(run_id)


def set_stage_context(stage: str | None) -> None:
    """Set stage-level context (called per stage execution)."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _loop.set(None)
    _workload.set(None)
    _run_id.set(None)
    _stage.set(None)
