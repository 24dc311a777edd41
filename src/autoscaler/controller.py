# src/autoscaler/controller.py — v1
"""Autoscaler control loop for one workload.

Every tick emits exactly one ScalingDecision, whether or not anything
changed. A failed metric query or replica update is recorded on the
decision and the loop carries on with its bounds untouched.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TYPE_CHECKING, Callable

from shipyard.autoscaler.policy import compute_desired_replicas
from shipyard.autoscaler.stabilizer import Stabilizer
from shipyard.core.errors import PlatformUnreachable, TransientInfraError
from shipyard.core.models import ScalingDecision, ScalingPolicy
from shipyard.logging.context import set_loop_context
from shipyard.platform.base_platform import BaseMetricsSource, BasePlatform

if TYPE_CHECKING:
    from shipyard.config.settings import Settings

logger = logging.getLogger(__name__)


def policy_with_settings(policy: ScalingPolicy | None, settings: Settings) -> ScalingPolicy:
    """Fill the bounds and target a manifest leaves unset from ``settings``."""
    return (policy or ScalingPolicy()).resolved(
        min_replicas=settings.min_replicas,
        max_replicas=settings.max_replicas,
        target_utilization=settings.target_utilization,
    )


class AutoscalerController:
    """Tick-driven proportional autoscaler.

    Args:
        workload: Scaled workload name.
        metrics: Utilization source.
        platform: Receives ``set_replicas`` calls.
        policy: Replica bounds and target utilization. Unset fields take
            the built-in defaults.
        stabilization_ticks: Consecutive ticks a change must persist.
        cooldown_s: Scale-down lockout after a scale-up.
        interval_s: Tick interval of ``run()``.
        decision_log_limit: Decisions retained.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        workload: str,
        metrics: BaseMetricsSource,
        platform: BasePlatform,
        policy: ScalingPolicy,
        stabilization_ticks: int = 2,
        cooldown_s: float = 300.0,
        interval_s: float = 30.0,
        decision_log_limit: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._workload = workload
        self._metrics = metrics
        self._platform = platform
        self._policy = policy.resolved()
        self._interval_s = interval_s
        self._stabilizer = Stabilizer(stabilization_ticks, cooldown_s, clock=clock)
        self._decisions: deque[ScalingDecision] = deque(maxlen=decision_log_limit)

    @classmethod
    def from_settings(
        cls,
        workload: str,
        metrics: BaseMetricsSource,
        platform: BasePlatform,
        settings: Settings,
        policy: ScalingPolicy | None = None,
    ) -> AutoscalerController:
        return cls(
            workload,
            metrics,
            platform,
            policy_with_settings(policy, settings),
            stabilization_ticks=settings.stabilization_ticks,
            cooldown_s=settings.scale_cooldown_s,
            interval_s=settings.autoscale_interval_s,
            decision_log_limit=settings.decision_log_limit,
        )

    @property
    def workload(self) -> str:
        return self._workload

    @property
    def policy(self) -> ScalingPolicy:
        return self._policy

    @property
    def decisions(self) -> list[ScalingDecision]:
        return list(self._decisions)

    def update_policy(self, policy: ScalingPolicy) -> None:
        policy = policy.resolved()
        if policy != self._policy:
            logger.info("Scaling policy for %s updated: %s", self._workload, policy)
            self._policy = policy
            self._stabilizer.reset()

    async def tick(self) -> ScalingDecision:
        """Evaluate once and return the decision (also appended to the log)."""
        policy = self._policy
        decision = ScalingDecision(workload=self._workload, target=policy.target_utilization)

        if not policy.enabled:
            decision.reason = "autoscaling disabled"
            return self._emit(decision)

        try:
            sample = await self._metrics.utilization(self._workload)
        except (PlatformUnreachable, TransientInfraError) as exc:
            decision.reason = f"metric query failed: {exc}"
            logger.warning("Skipping tick for %s: %s", self._workload, exc)
            return self._emit(decision)

        current = sample.replicas
        computed = compute_desired_replicas(
            current,
            sample.value,
            policy.target_utilization,
            policy.min_replicas,
            policy.max_replicas,
        )
        decision.observed = sample.value
        decision.current_replicas = current
        decision.computed_replicas = computed

        chosen, reason = self._stabilizer.propose(current, computed)
        decision.reason = reason
        if chosen is None:
            if computed == current:
                decision.chosen_replicas = current
            return self._emit(decision)

        try:
            await self._platform.set_replicas(self._workload, chosen)
        except (PlatformUnreachable, TransientInfraError) as exc:
            decision.reason = f"set_replicas failed: {exc}"
            logger.warning("Could not scale %s to %d: %s", self._workload, chosen, exc)
            return self._emit(decision)

        self._stabilizer.record_applied(current, chosen)
        decision.chosen_replicas = chosen
        decision.applied = True
        logger.info(
            "Scaled %s %d -> %d (observed=%.1f, target=%.1f)",
            self._workload, current, chosen, sample.value, policy.target_utilization,
        )
        return self._emit(decision)

    def _emit(self, decision: ScalingDecision) -> ScalingDecision:
        self._decisions.append(decision)
        logger.debug("Decision for %s: %s", self._workload, decision.reason)
        return decision

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``interval_s`` until ``stop_event`` is set."""
        set_loop_context("autoscaler", self._workload)
        logger.info("Autoscaler for %s started (interval=%.0fs)", self._workload, self._interval_s)
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Autoscaler tick for %s crashed", self._workload)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                continue
        logger.info("Autoscaler for %s stopped", self._workload)
