# src/reconciler/reconciler.py — v1
"""GitOps reconciler — drive the live platform toward the manifest set.

Per pass:
  1. Read every manifest (never cached) and render the desired tree
  2. Read the live tree and diff it, ignoring configured paths
  3. Empty diff: InSync, no platform calls beyond the reads
  4. Otherwise OutOfSync; apply if forced, or auto-sync is on and the drift
     is either manifest-originated or self-heal is enabled
  5. Re-read manifest versions; if they moved, restart the pass
  6. Apply wave by wave, waiting for each wave to become healthy
  7. Prune extraneous resources owned by manifests that opt in

The whole pass is bounded by the sync timeout. An abandoned pass is not
resumed; the next tick starts from scratch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from shipyard.core.errors import ApplyPartialFailure, PlatformUnreachable, TransientInfraError
from shipyard.core.models import (
    ReconcileSyncRecord,
    ResourceKey,
    ResourceSelector,
    ResourceTree,
    utcnow,
)
from shipyard.logging.context import set_loop_context
from shipyard.manifests.base_repository import BaseManifestRepository
from shipyard.platform.base_platform import BasePlatform
from shipyard.reconciler.desired import DesiredState, owner_of, render_desired
from shipyard.reconciler.diff import compute_diff
from shipyard.reconciler.health import assess_health
from shipyard.reconciler.history import SyncHistory
from shipyard.reconciler.state_machine import SyncStatus, WorkloadSyncState, worst_status
from shipyard.reconciler.waves import group_into_waves

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)

MAX_PASS_RESTARTS = 3

# Fields the platform owns or assigns at runtime.
DEFAULT_IGNORE_PATHS = [
    "status",
    "metadata.resourceVersion",
    "metadata.uid",
    "metadata.generation",
    "metadata.creationTimestamp",
    "spec.clusterIP",
    "spec.clusterIPs",
]


class _PassOutcome(Exception):
    """Internal: a pass ended early with a final status."""

    def __init__(self, status: SyncStatus, reason: str) -> None:
        self.status = status
        self.reason = reason
        super().__init__(reason)


class GitOpsReconciler:
    """Reconcile the manifest repository against a platform.

    Args:
        repository: Source of desired state.
        platform: Live state to converge.
        auto_sync: Apply diffs without a manual ``sync()``.
        self_heal: Also revert out-of-band drift when manifests did not change.
        prune: Allow deleting extraneous resources of opting-in manifests.
        ignore_paths: Dotted glob paths excluded from every comparison
            (DEFAULT_IGNORE_PATHS if None).
        managed_namespaces: Restrict live reads to these namespaces (empty = all).
        wave_timeout_s: How long a wave may take to become healthy.
        sync_timeout_s: Upper bound for a whole pass.
        poll_interval_s: Health polling interval within a wave.
        interval_s: Tick interval of ``run()``.
        history_limit: Sync records retained.
    """

    def __init__(
        self,
        repository: BaseManifestRepository,
        platform: BasePlatform,
        auto_sync: bool = True,
        self_heal: bool = True,
        prune: bool = True,
        ignore_paths: list[str] | None = None,
        managed_namespaces: list[str] | None = None,
        wave_timeout_s: float = 120.0,
        sync_timeout_s: float = 600.0,
        poll_interval_s: float = 2.0,
        interval_s: float = 180.0,
        history_limit: int = 50,
    ) -> None:
        self._repository = repository
        self._platform = platform
        self._auto_sync = auto_sync
        self._self_heal = self_heal
        self._prune = prune
        self._ignore_paths = list(
            ignore_paths if ignore_paths is not None else DEFAULT_IGNORE_PATHS
        )
        namespaces = list(managed_namespaces or [])
        if namespaces:
            # Cluster-scoped resources (Namespace itself) have an empty namespace.
            namespaces.append("")
        self._selector = ResourceSelector(namespaces=namespaces)
        self._wave_timeout_s = wave_timeout_s
        self._sync_timeout_s = sync_timeout_s
        self._poll_interval_s = poll_interval_s
        self._interval_s = interval_s
        self._history = SyncHistory(history_limit)
        self._states: dict[str, WorkloadSyncState] = {}
        self._synced_versions: dict[str, int] = {}
        self._pass_counter = 0
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        repository: BaseManifestRepository,
        platform: BasePlatform,
        settings: Settings,
    ) -> GitOpsReconciler:
        return cls(
            repository,
            platform,
            auto_sync=settings.auto_sync,
            self_heal=settings.self_heal,
            prune=settings.prune,
            ignore_paths=settings.ignore_paths_list,
            managed_namespaces=settings.managed_namespaces_list,
            wave_timeout_s=settings.sync_wave_timeout_s,
            sync_timeout_s=settings.sync_timeout_s,
            poll_interval_s=settings.health_poll_interval_s,
            interval_s=settings.reconcile_interval_s,
            history_limit=settings.reconcile_history_limit,
        )

    # --- Queries ---

    @property
    def history(self) -> SyncHistory:
        return self._history

    @property
    def states(self) -> dict[str, WorkloadSyncState]:
        return dict(self._states)

    def status(self, workload: str) -> SyncStatus:
        state = self._states.get(workload)
        return state.status if state else SyncStatus.UNKNOWN

    # --- Triggers ---

    async def sync(self) -> ReconcileSyncRecord:
        """Manual sync: apply regardless of auto-sync and self-heal."""
        return await self.reconcile_once(force=True)

    def notify(self, workload: str | None = None, version: int | None = None) -> None:
        """Wake ``run()`` early, e.g. on a manifest commit."""
        logger.debug("Reconciler notified (workload=%s, version=%s)", workload, version)
        self._wake.set()

    async def run(self, stop_event: asyncio.Event) -> None:
        """Reconcile every ``interval_s`` or on notify, until ``stop_event`` is set."""
        set_loop_context("reconciler")
        logger.info("Reconciler loop started (interval=%.0fs)", self._interval_s)
        while not stop_event.is_set():
            self._wake.clear()
            try:
                await self.reconcile_once()
            except Exception:
                logger.exception("Reconciliation pass crashed")
            await _wait_any(stop_event, self._wake, self._interval_s)
        logger.info("Reconciler loop stopped")

    # --- Pass ---

    async def reconcile_once(self, force: bool = False) -> ReconcileSyncRecord:
        """Run one full pass and append its record to the history."""
        async with self._lock:
            self._pass_counter += 1
            record = ReconcileSyncRecord(pass_id=self._pass_counter)
            start = time.monotonic()
            try:
                await asyncio.wait_for(self._pass(record, force), timeout=self._sync_timeout_s)
            except _PassOutcome as outcome:
                record.status = outcome.status.value
                record.reason = outcome.reason
            except asyncio.TimeoutError:
                record.status = SyncStatus.DEGRADED.value
                record.reason = "sync timeout"
                self._mark(
                    [w for w, s in self._states.items() if s.status == SyncStatus.PROGRESSING],
                    SyncStatus.DEGRADED,
                    "sync timeout",
                )
            except (PlatformUnreachable, TransientInfraError) as exc:
                record.status = SyncStatus.UNKNOWN.value
                record.reason = f"{type(exc).__name__}: {exc}"
                self._mark(list(self._states), SyncStatus.UNKNOWN, record.reason)

            record.finished_at = utcnow()
            self._history.append(record)
            logger.info(
                "Pass %d: %s%s (applied=%d, pruned=%d, unmanaged=%d, %.2fs)",
                record.pass_id,
                record.status,
                f" [{record.reason}]" if record.reason else "",
                len(record.applied),
                len(record.pruned),
                len(record.unmanaged),
                time.monotonic() - start,
            )
            return record

    async def _pass(self, record: ReconcileSyncRecord, force: bool) -> None:
        for attempt in range(1, MAX_PASS_RESTARTS + 1):
            manifests = await self._repository.read_all()
            desired = render_desired(manifests, self._ignore_paths)
            for workload in desired.versions:
                self._states.setdefault(workload, WorkloadSyncState(workload))
            record.manifest_versions = dict(desired.versions)

            observed = await self._platform.get_observed(self._selector)
            diff = compute_diff(desired, observed)
            record.diff = diff
            prunable, unmanaged = self._split_extraneous(desired, observed, diff.extraneous)
            record.unmanaged = unmanaged

            if diff.is_empty and not prunable:
                self._mark(list(desired.versions), SyncStatus.IN_SYNC)
                self._synced_versions = dict(desired.versions)
                record.status = SyncStatus.IN_SYNC.value
                return

            drifted = sorted({desired.owners[k] for k in diff.out_of_sync})
            self._mark(
                [w for w in desired.versions if w not in drifted], SyncStatus.IN_SYNC
            )
            self._mark(drifted, SyncStatus.OUT_OF_SYNC, "live state differs from manifest")

            changed = {
                w for w, v in desired.versions.items() if self._synced_versions.get(w) != v
            }
            keys = self._select_keys(desired, diff.out_of_sync, changed, force)
            if keys is None:
                reason = "auto-sync disabled" if not self._auto_sync else "self-heal disabled"
                raise _PassOutcome(SyncStatus.OUT_OF_SYNC, reason)
            current = {w: v for w, (_, v) in (await self._repository.read_all()).items()}
            if current != desired.versions:
                logger.info("Manifests moved during pass (attempt %d), restarting", attempt)
                continue

            record.self_healed = any(desired.owners[k] not in changed for k in keys)
            await self._apply(desired, keys, prunable, record)
            return

        raise _PassOutcome(SyncStatus.OUT_OF_SYNC, "manifests kept changing during the pass")

    def _select_keys(
        self,
        desired: DesiredState,
        out_of_sync: list[ResourceKey],
        changed: set[str],
        force: bool,
    ) -> list[ResourceKey] | None:
        """Keys to apply, or None when nothing may be applied this pass."""
        if force:
            return out_of_sync
        if not self._auto_sync:
            return None
        if self._self_heal:
            return out_of_sync
        keys = [k for k in out_of_sync if desired.owners[k] in changed]
        if out_of_sync and not keys:
            logger.warning(
                "Out-of-band drift on %d resource(s) left in place: self-heal disabled",
                len(out_of_sync),
            )
            return None
        return keys

    def _split_extraneous(
        self,
        desired: DesiredState,
        observed: ResourceTree,
        extraneous: list[ResourceKey],
    ) -> tuple[list[ResourceKey], list[ResourceKey]]:
        prunable: list[ResourceKey] = []
        unmanaged: list[ResourceKey] = []
        for key in extraneous:
            resource = observed.get(key)
            owner = owner_of(resource) if resource is not None else None
            if self._prune and owner is not None and desired.prune.get(owner, False):
                prunable.append(key)
            else:
                unmanaged.append(key)
        return prunable, unmanaged

    async def _apply(
        self,
        desired: DesiredState,
        keys: list[ResourceKey],
        prunable: list[ResourceKey],
        record: ReconcileSyncRecord,
    ) -> None:
        owners = sorted({desired.owners[k] for k in keys})
        self._mark(owners, SyncStatus.PROGRESSING, "applying")

        for wave, batch in group_into_waves(desired.tree.subset(keys)):
            try:
                await self._platform.apply(batch)
            except ApplyPartialFailure as exc:
                record.applied.extend(k for k in batch.keys() if k not in exc.failed)
                self._fail(desired, record, exc.failed, f"wave {wave}: {exc}")
            record.applied.extend(batch.keys())
            record.waves_applied.append(wave)

            failing = await self._await_wave_health(batch.keys())
            if failing:
                self._fail(
                    desired,
                    record,
                    failing,
                    f"wave {wave} not healthy after {self._wave_timeout_s:.0f}s: "
                    + ", ".join(str(k) for k in failing),
                )

        if prunable:
            await self._platform.delete(prunable)
            record.pruned = list(prunable)
            logger.info("Pruned %d resource(s)", len(prunable))

        self._mark(owners, SyncStatus.IN_SYNC)
        self._synced_versions = dict(desired.versions)
        status = worst_status([self.status(w) for w in desired.versions])
        record.status = status.value
        if status != SyncStatus.IN_SYNC:
            lagging = sorted(w for w in desired.versions if self.status(w) != SyncStatus.IN_SYNC)
            record.reason = "drift left in place: " + ", ".join(lagging)

    def _fail(
        self,
        desired: DesiredState,
        record: ReconcileSyncRecord,
        failing: list[ResourceKey],
        reason: str,
    ) -> None:
        record.failed_resources = list(failing)
        failed_owners = sorted({desired.owners[k] for k in failing if k in desired.owners})
        self._mark(failed_owners, SyncStatus.DEGRADED, reason)
        pending = [
            w for w, s in self._states.items()
            if s.status == SyncStatus.PROGRESSING and w not in failed_owners
        ]
        self._mark(pending, SyncStatus.OUT_OF_SYNC, "sync aborted")
        raise _PassOutcome(SyncStatus.DEGRADED, reason)

    async def _await_wave_health(self, keys: list[ResourceKey]) -> list[ResourceKey]:
        """Poll until every key is healthy. Returns the keys still failing at timeout."""
        deadline = time.monotonic() + self._wave_timeout_s
        while True:
            observed = await self._platform.get_observed(self._selector)
            health = {k: assess_health(observed.get(k)) for k in keys}
            failing = [k for k, h in health.items() if h != "Healthy"]
            if not failing:
                return []
            if any(health[k] == "Degraded" for k in failing):
                return failing
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return failing
            await asyncio.sleep(min(self._poll_interval_s, remaining))

    def _mark(self, workloads: list[str], status: SyncStatus, reason: str = "") -> None:
        for workload in workloads:
            self._states.setdefault(workload, WorkloadSyncState(workload)).transition(status, reason)

    def overall_status(self) -> SyncStatus:
        return worst_status([s.status for s in self._states.values()])


async def _wait_any(stop_event: asyncio.Event, wake: asyncio.Event, timeout: float) -> None:
    waiters = {
        asyncio.create_task(stop_event.wait()),
        asyncio.create_task(wake.wait()),
    }
    try:
        await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await asyncio.gather(*waiters, return_exceptions=True)
