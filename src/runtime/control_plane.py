# src/runtime/control_plane.py — v1
"""Control plane — run the engine, reconciler and autoscalers side by side.

Each loop is its own asyncio task, so a stuck pipeline run never delays
a reconciliation pass or an autoscaler tick. Manifest commits wake the
reconciler early and refresh the set of autoscaled workloads.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from shipyard.autoscaler.controller import AutoscalerController, policy_with_settings
from shipyard.manifests.base_repository import BaseManifestRepository
from shipyard.pipeline.engine import PipelineEngine
from shipyard.platform.base_platform import BaseMetricsSource, BasePlatform
from shipyard.reconciler.reconciler import GitOpsReconciler

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)


class ControlPlane:
    """Owns the long-running loops and their shutdown."""

    def __init__(
        self,
        settings: Settings,
        engine: PipelineEngine,
        reconciler: GitOpsReconciler,
        repository: BaseManifestRepository,
        platform: BasePlatform,
        metrics: BaseMetricsSource,
    ) -> None:
        self._settings = settings
        self.engine = engine
        self.reconciler = reconciler
        self._repository = repository
        self._platform = platform
        self._metrics = metrics
        self.autoscalers: dict[str, AutoscalerController] = {}
        self._autoscaler_tasks: dict[str, tuple[asyncio.Task[None], asyncio.Event]] = {}
        self._stop = asyncio.Event()
        self._reconciler_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started and not self._stop.is_set()

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._repository.add_listener(self._on_commit)
        await self.refresh_autoscalers()
        self._reconciler_task = asyncio.create_task(
            self.reconciler.run(self._stop), name="reconciler"
        )
        logger.info("Control plane started (%d autoscaled workloads)", len(self.autoscalers))

    async def stop(self, cancel_runs: bool = True) -> None:
        """Stop every loop and close the engine."""
        self._stop.set()
        for _, stop_event in self._autoscaler_tasks.values():
            stop_event.set()
        tasks = [task for task, _ in self._autoscaler_tasks.values()]
        if self._reconciler_task is not None:
            tasks.append(self._reconciler_task)
        tasks.extend(self._background)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._autoscaler_tasks.clear()
        await self.engine.close(cancel_running=cancel_runs)
        logger.info("Control plane stopped")

    async def __aenter__(self) -> ControlPlane:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def refresh_autoscalers(self) -> None:
        """Start, update or stop autoscalers to match the manifests' scaling policies."""
        manifests = await self._repository.read_all()
        wanted = {
            workload: policy_with_settings(document.scaling, self._settings)
            for workload, (document, _) in manifests.items()
            if document.scaling is not None and document.scaling.enabled
        }

        for workload in sorted(set(self.autoscalers) - set(wanted)):
            self._stop_autoscaler(workload)

        for workload, policy in sorted(wanted.items()):
            controller = self.autoscalers.get(workload)
            if controller is not None:
                controller.update_policy(policy)
                continue
            controller = AutoscalerController.from_settings(
                workload, self._metrics, self._platform, self._settings, policy=policy
            )
            self.autoscalers[workload] = controller
            if self.running:
                stop_event = asyncio.Event()
                task = asyncio.create_task(
                    controller.run(stop_event), name=f"autoscaler:{workload}"
                )
                self._autoscaler_tasks[workload] = (task, stop_event)

    def _stop_autoscaler(self, workload: str) -> None:
        self.autoscalers.pop(workload, None)
        entry = self._autoscaler_tasks.pop(workload, None)
        if entry is not None:
            entry[1].set()
        logger.info("Autoscaler for %s removed", workload)

    def _on_commit(self, workload: str, version: int) -> None:
        self.reconciler.notify(workload, version)
        if not self.running:
            return
        task = asyncio.get_running_loop().create_task(self._refresh_safely())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_safely(self) -> None:
        try:
            await self.refresh_autoscalers()
        except Exception:
            logger.exception("Refreshing autoscalers failed")
