# src/pipeline/runner.py — v1
"""Run executor — walk the stage DAG for one PipelineRun.

Walks the ExecutionPlan level by level. Stages inside a level run
concurrently; the next level starts only when the whole level is done.

Supports:
  - Per-stage retry of transient errors with bounded exponential backoff
  - Per-attempt timeouts
  - required / best-effort stage policies
  - Cancellation, with release of the in-flight stage's external resources
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from shipyard.core.errors import Cancelled, StageGraphError, StageTimeout
from shipyard.core.models import PipelineRun, StagePolicy, utcnow
from shipyard.logging.context import set_run_context, set_stage_context
from shipyard.pipeline.context import StageContext
from shipyard.pipeline.dag_builder import ExecutionPlan, build_dag
from shipyard.pipeline.retry import NO_RETRY, RetryPolicy, with_retry
from shipyard.pipeline.stage import BaseStage, dependency_map

logger = logging.getLogger(__name__)


@dataclass
class _StageFailure:
    stage: str
    reason: str
    cancelled: bool = False


class RunExecutor:
    """Execute a stage graph against a PipelineRun.

    Args:
        stages: Stage definitions, in declaration order.
        retry_policy: Bounds for retrying transient errors.
        stage_timeout_s: Default per-attempt timeout (None = unbounded).
        best_effort_continue: If False, best-effort failures abort like
            required ones.
    """

    def __init__(
        self,
        stages: list[BaseStage],
        retry_policy: RetryPolicy | None = None,
        stage_timeout_s: float | None = None,
        best_effort_continue: bool = True,
    ) -> None:
        self._stages: dict[str, BaseStage] = {}
        for stage in stages:
            if stage.name in self._stages:
                raise StageGraphError(f"Duplicate stage name: '{stage.name}'")
            self._stages[stage.name] = stage
        self._plan = build_dag(dependency_map(stages))
        self._retry = retry_policy or RetryPolicy()
        self._timeout_s = stage_timeout_s
        self._best_effort_continue = best_effort_continue

    @property
    def plan(self) -> ExecutionPlan:
        return self._plan

    @property
    def stage_specs(self) -> list[tuple[str, StagePolicy]]:
        """(name, policy) pairs in flat execution order."""
        return [(name, self._stages[name].policy) for name in self._plan.flat_order]

    async def execute(self, run: PipelineRun, ctx: StageContext) -> PipelineRun:
        """Execute every stage in DAG order and finalize the run record."""
        start_ns = time.monotonic_ns()
        if run.status == "queued":
            run.start()
        set_run_context(run.workload, run.run_id)
        logger.info("Run %s started for %s", run.run_id, run.revision.revision_id)

        try:
            for level_idx, level in enumerate(self._plan.stages):
                logger.debug(
                    "Level %d/%d: executing %s", level_idx + 1, len(self._plan.stages), level
                )
                if ctx.cancel_reason is not None:
                    self._finish_cancelled(run, ctx)
                    return run

                failure = await self._run_level(level, ctx)
                if failure is None:
                    continue
                if failure.cancelled:
                    self._finish_cancelled(run, ctx)
                    return run

                self._skip_pending(run, f"upstream stage '{failure.stage}' failed")
                run.finish("failed", reason=failure.reason, failed_stage=failure.stage)
                logger.error(
                    "Run %s failed at stage '%s': %s", run.run_id, failure.stage, failure.reason
                )
                return run
        except asyncio.CancelledError:
            self._finish_cancelled(run, ctx)
            raise
        finally:
            set_stage_context(None)

        run.manifest_version = ctx.manifest_version
        run.finish("succeeded")
        logger.info(
            "Run %s succeeded: artifact=%s, %dms",
            run.run_id,
            run.artifact.reference if run.artifact else None,
            (time.monotonic_ns() - start_ns) // 1_000_000,
        )
        return run

    async def _run_level(self, level: list[str], ctx: StageContext) -> _StageFailure | None:
        tasks = {
            asyncio.create_task(self._run_stage(name, ctx), name=f"stage:{name}"): name
            for name in level
        }
        failure: _StageFailure | None = None
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task.cancelled():
                        continue
                    outcome = task.result()
                    if outcome is not None and failure is None:
                        failure = outcome
                        ctx.abort_reason = f"aborted: stage '{outcome.stage}' failed"
                        for sibling in pending:
                            sibling.cancel()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return failure

    async def _run_stage(self, name: str, ctx: StageContext) -> _StageFailure | None:
        stage = self._stages[name]
        run = ctx.run
        set_stage_context(name)
        run.set_stage(name, status="running", started_at=utcnow())
        policy = self._retry if stage.retryable else NO_RETRY
        timeout_s = stage.timeout_s or self._timeout_s

        async def attempt() -> dict | None:
            ctx.check_cancelled()
            try:
                return await asyncio.wait_for(stage.execute(ctx), timeout=timeout_s)
            except asyncio.TimeoutError:
                await self._release(stage, ctx)
                raise StageTimeout(f"stage '{name}' exceeded {timeout_s}s") from None

        def on_attempt(n: int) -> None:
            run.set_stage(name, attempts=n)

        try:
            output = await with_retry(attempt, policy, label=f"stage '{name}'", on_attempt=on_attempt)
        except asyncio.CancelledError:
            await self._release(stage, ctx)
            if ctx.cancel_reason is not None:
                run.set_stage(
                    name, status="failed", finished_at=utcnow(),
                    reason="cancelled", error_type="Cancelled",
                )
            else:
                run.set_stage(
                    name, status="skipped", finished_at=utcnow(),
                    reason=ctx.abort_reason or "aborted",
                )
            raise
        except Cancelled:
            await self._release(stage, ctx)
            run.set_stage(
                name, status="failed", finished_at=utcnow(),
                reason="cancelled", error_type="Cancelled",
            )
            return _StageFailure(stage=name, reason="cancelled", cancelled=True)
        except Exception as exc:
            run.set_stage(
                name, status="failed", finished_at=utcnow(),
                reason=str(exc), error_type=type(exc).__name__,
            )
            if stage.policy == "best-effort" and self._best_effort_continue:
                logger.warning("Best-effort stage '%s' failed, continuing: %s", name, exc)
                return None
            return _StageFailure(stage=name, reason=f"{type(exc).__name__}: {exc}")

        result = run.set_stage(name, status="succeeded", finished_at=utcnow(), output=output or {})
        ctx.outputs[name] = result.output
        logger.info("Stage '%s' succeeded after %d attempt(s)", name, result.attempts)
        return None

    async def _release(self, stage: BaseStage, ctx: StageContext) -> None:
        try:
            await stage.release(ctx)
        except Exception:
            logger.exception("Releasing resources of stage '%s' failed", stage.name)

    def _skip_pending(self, run: PipelineRun, reason: str) -> None:
        for name in run.stage_order():
            if run.stages[name].status == "pending":
                run.set_stage(name, status="skipped", reason=reason)

    def _finish_cancelled(self, run: PipelineRun, ctx: StageContext) -> None:
        if run.is_terminal:
            return
        interrupted = [
            name for name in run.stage_order()
            if run.stages[name].status == "failed" and run.stages[name].reason == "cancelled"
        ]
        self._skip_pending(run, "cancelled")
        run.cancel_cause = ctx.cancel_reason
        run.finish(
            "failed",
            reason="cancelled",
            failed_stage=interrupted[0] if interrupted else None,
        )
        logger.warning("Run %s cancelled (%s)", run.run_id, ctx.cancel_reason)
