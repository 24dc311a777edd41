# src/pipeline/engine.py — v1
"""Pipeline engine — turn revisions into runs and runs into artifacts.

One worker task per workload drains that workload's FIFO queue, so runs
for the same workload never overlap while different workloads proceed
concurrently. With ``supersede_policy="cancel"`` a new revision cancels
the workload's in-flight run and drops its older queued runs instead of
waiting behind them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from shipyard.core.errors import ManifestNotFound, RunStateError
from shipyard.core.models import PipelineRun, Revision, split_reference
from shipyard.pipeline.context import PipelineServices, StageContext
from shipyard.pipeline.retry import RetryPolicy
from shipyard.pipeline.run_table import RunTable
from shipyard.pipeline.runner import RunExecutor
from shipyard.pipeline.stage import BaseStage
from shipyard.pipeline.stages import build_standard_stages
from shipyard.pipeline.versioning import BuildCounter, artifact_tag

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)

SUPERSEDED = "superseded"
SHUTDOWN = "shutdown"


class PipelineEngine:
    """Queue, execute, cancel and inspect pipeline runs.

    Must be used from within a running event loop: workers are created
    lazily on the first revision of each workload.
    """

    def __init__(
        self,
        services: PipelineServices,
        stages: list[BaseStage] | None = None,
        retry_policy: RetryPolicy | None = None,
        stage_timeout_s: float | None = None,
        best_effort_continue: bool = True,
        supersede_policy: str = "queue",
    ) -> None:
        if supersede_policy not in ("queue", "cancel"):
            raise ValueError(f"Unknown supersede policy: {supersede_policy}")
        self._services = services
        self._executor = RunExecutor(
            stages if stages is not None else build_standard_stages(),
            retry_policy=retry_policy,
            stage_timeout_s=stage_timeout_s,
            best_effort_continue=best_effort_continue,
        )
        self._supersede_policy = supersede_policy
        self._runs = RunTable()
        self._counter = BuildCounter()
        self._queues: dict[str, asyncio.Queue[str | None]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._futures: dict[str, asyncio.Future[PipelineRun]] = {}
        self._contexts: dict[str, StageContext] = {}
        self._tasks: dict[str, asyncio.Task[PipelineRun]] = {}
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        services: PipelineServices,
        settings: Settings,
        stages: list[BaseStage] | None = None,
    ) -> PipelineEngine:
        services.cas_max_attempts = settings.manifest_cas_max_attempts
        return cls(
            services,
            stages=stages,
            retry_policy=RetryPolicy.from_settings(settings),
            stage_timeout_s=settings.stage_timeout_s,
            best_effort_continue=settings.pipeline_best_effort_continue,
            supersede_policy=settings.supersede_policy,
        )

    @property
    def runs(self) -> RunTable:
        return self._runs

    @property
    def executor(self) -> RunExecutor:
        return self._executor

    # --- Triggers ---

    def enqueue(self, revision: Revision) -> PipelineRun:
        """Register a run for ``revision`` and return its queued record."""
        if self._closed:
            raise RunStateError("Pipeline engine is closed")

        run = self._runs.create(revision, self._executor.stage_specs)
        self._futures[run.run_id] = asyncio.get_running_loop().create_future()

        if self._supersede_policy == "cancel":
            self._supersede(revision.workload, keep=run.run_id)

        self._queue_for(revision.workload).put_nowait(run.run_id)
        logger.info("Queued run %s for %s", run.run_id, revision.revision_id)
        return run

    def on_revision(self, revision_id: str) -> PipelineRun:
        """Event entrypoint: ``workload@commit#build``."""
        return self.enqueue(Revision.parse(revision_id))

    async def submit(self, revision: Revision) -> PipelineRun:
        """Enqueue ``revision`` and wait for its run to finish."""
        run = self.enqueue(revision)
        return await self.wait(run.run_id)

    async def wait(self, run_id: str) -> PipelineRun:
        """Wait until a run is terminal. Cancelling the waiter leaves the run alone."""
        self._runs.get(run_id)
        return await asyncio.shield(self._futures[run_id])

    # --- Cancellation ---

    def cancel(self, run_id: str, reason: str = "operator") -> PipelineRun:
        """Cancel a queued or running run. Terminal runs are left untouched."""
        run = self._runs.get(run_id)
        if run.is_terminal:
            return run
        if run_id in self._tasks:
            self._cancel_active(run_id, reason)
        else:
            self._cancel_queued(run, reason)
        return run

    def _supersede(self, workload: str, keep: str) -> None:
        for queued in self._runs.queued(workload):
            if queued.run_id != keep and queued.run_id not in self._tasks:
                self._cancel_queued(queued, SUPERSEDED)
        for run_id, ctx in list(self._contexts.items()):
            if ctx.workload == workload:
                self._cancel_active(run_id, SUPERSEDED)

    def _cancel_queued(self, run: PipelineRun, reason: str) -> None:
        _finalize_cancelled(run, reason)
        self._resolve(run)
        logger.warning("Dropped queued run %s (%s)", run.run_id, reason)

    def _cancel_active(self, run_id: str, reason: str) -> None:
        ctx = self._contexts[run_id]
        if ctx.cancel_reason is None:
            ctx.cancel_reason = reason
        self._tasks[run_id].cancel()
        logger.warning("Cancelling run %s (%s)", run_id, reason)

    # --- Workers ---

    def _queue_for(self, workload: str) -> asyncio.Queue[str | None]:
        queue = self._queues.get(workload)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[workload] = queue
            self._workers[workload] = asyncio.create_task(
                self._worker(workload, queue), name=f"pipeline-worker:{workload}"
            )
        return queue

    async def _worker(self, workload: str, queue: asyncio.Queue[str | None]) -> None:
        logger.debug("Pipeline worker for %s started", workload)
        while True:
            run_id = await queue.get()
            try:
                if run_id is None:
                    return
                run = self._runs.get(run_id)
                if run.is_terminal:
                    continue
                await self._execute(run)
            finally:
                queue.task_done()

    async def _execute(self, run: PipelineRun) -> None:
        try:
            ctx = await self._prepare(run)
        except Exception as exc:
            logger.error("Run %s could not start: %s", run.run_id, exc)
            _finalize_failed(run, f"{type(exc).__name__}: {exc}")
            self._resolve(run)
            return
        if run.is_terminal:
            # Cancelled while the build number was being allocated.
            self._resolve(run)
            return

        task = asyncio.create_task(self._executor.execute(run, ctx), name=f"run:{run.run_id}")
        self._contexts[run.run_id] = ctx
        self._tasks[run.run_id] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            if ctx.cancel_reason is None:
                ctx.cancel_reason = SHUTDOWN
            task.cancel()
            await asyncio.wait({task})
            raise
        finally:
            self._tasks.pop(run.run_id, None)
            self._contexts.pop(run.run_id, None)
            self._release_workspace(ctx)
            self._settle(run, ctx, task)

    async def _prepare(self, run: PipelineRun) -> StageContext:
        name = run.workload
        if not self._counter.is_seeded(name):
            self._counter.seed(name, await self._services.store.list_tags(name))
            self._counter.seed(name, await self._published_tags(name))
        build_number = self._counter.allocate(name, run.revision)
        run.build_number = build_number
        return StageContext(
            run=run,
            services=self._services,
            artifact_name=name,
            tag=artifact_tag(build_number, run.revision),
        )

    def _release_workspace(self, ctx: StageContext) -> None:
        if ctx.workspace is None:
            return
        try:
            self._services.toolchain.cleanup(ctx.workspace)
        except Exception:
            logger.exception("Cleaning up the workspace of run %s failed", ctx.run.run_id)
        ctx.workspace = None

    async def _published_tags(self, name: str) -> list[str]:
        """Tags of ``name`` referenced by any committed manifest revision.

        The manifest repository outlives an in-memory artifact store, so a
        fresh process still sees the build numbers it already promoted.
        """
        repository = self._services.repository
        references = [r.document.artifact for r in await repository.history(name)]
        try:
            document, _ = await repository.read(name)
            references.append(document.artifact)
        except ManifestNotFound:
            logger.debug("No manifest for %s, build numbers seeded from the store only", name)

        tags: list[str] = []
        for reference in references:
            try:
                repo, tag = split_reference(reference)
            except ValueError:
                continue
            if repo.rsplit("/", 1)[-1] == name:
                tags.append(tag)
        return tags

    def _settle(self, run: PipelineRun, ctx: StageContext, task: asyncio.Task[PipelineRun]) -> None:
        if task.cancelled():
            if not run.is_terminal:
                _finalize_cancelled(run, ctx.cancel_reason or SHUTDOWN)
        elif task.exception() is not None:
            exc = task.exception()
            logger.error("Run %s crashed: %s", run.run_id, exc, exc_info=exc)
            if not run.is_terminal:
                _finalize_failed(run, f"{type(exc).__name__}: {exc}")
        self._resolve(run)

    def _resolve(self, run: PipelineRun) -> None:
        future = self._futures.get(run.run_id)
        if future is not None and not future.done():
            future.set_result(run)

    # --- Shutdown ---

    async def drain(self) -> None:
        """Wait until every queued run has been processed."""
        await asyncio.gather(*(q.join() for q in self._queues.values()))

    async def close(self, cancel_running: bool = False) -> None:
        """Stop accepting revisions and stop the workers.

        Queued runs still execute unless ``cancel_running`` is set, in which
        case queued and in-flight runs are cancelled with cause "shutdown".
        """
        self._closed = True
        if cancel_running:
            for run in self._runs.list_runs():
                if not run.is_terminal:
                    self.cancel(run.run_id, SHUTDOWN)
        for queue in self._queues.values():
            queue.put_nowait(None)
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()
        logger.info("Pipeline engine closed (%d runs)", len(self._runs))


def _finalize_cancelled(run: PipelineRun, cause: str) -> None:
    for name in run.stage_order():
        if not run.stages[name].is_terminal:
            run.set_stage(name, status="skipped", reason="cancelled")
    run.cancel_cause = cause
    run.finish("failed", reason="cancelled")


def _finalize_failed(run: PipelineRun, reason: str) -> None:
    for name in run.stage_order():
        if not run.stages[name].is_terminal:
            run.set_stage(name, status="skipped", reason=reason)
    run.finish("failed", reason=reason)
