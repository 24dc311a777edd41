# src/autoscaler/stabilizer.py — v1
"""Anti-flapping rules applied to computed replica counts.

A change is acted on only after it has been proposed, in the same
direction, on ``required_ticks`` consecutive ticks. The count acted on is
the most conservative one seen during the streak. Scale-downs are refused
while the cooldown following the last scale-up is running.
"""

from __future__ import annotations

import time
from typing import Callable


class Stabilizer:
    def __init__(
        self,
        required_ticks: int = 2,
        cooldown_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if required_ticks < 1:
            raise ValueError("required_ticks must be >= 1")
        self._required = required_ticks
        self._cooldown_s = cooldown_s
        self._clock = clock
        self._direction = 0
        self._proposals: list[int] = []
        self._last_scale_up: float | None = None

    @property
    def streak(self) -> int:
        return len(self._proposals)

    def cooldown_remaining(self) -> float:
        if self._last_scale_up is None:
            return 0.0
        return max(0.0, self._cooldown_s - (self._clock() - self._last_scale_up))

    def propose(self, current: int, computed: int) -> tuple[int | None, str]:
        """Return (replicas to set, reason); replicas is None when holding."""
        direction = (computed > current) - (computed < current)
        if direction == 0:
            self.reset()
            return None, "within target"

        if direction != self._direction:
            self._direction = direction
            self._proposals = []
        self._proposals.append(computed)

        if direction < 0:
            remaining = self.cooldown_remaining()
            if remaining > 0:
                return None, f"scale-down blocked by cooldown ({remaining:.0f}s left)"

        if len(self._proposals) < self._required:
            return None, f"awaiting stabilization ({len(self._proposals)}/{self._required})"

        chosen = min(self._proposals) if direction > 0 else max(self._proposals)
        if (chosen - current) * direction <= 0:
            self.reset()
            return None, "within target"
        return chosen, "scale up" if direction > 0 else "scale down"

    def record_applied(self, previous: int, chosen: int) -> None:
        if chosen > previous:
            self._last_scale_up = self._clock()
        self.reset()

    def reset(self) -> None:
        self._direction = 0
        self._proposals = []
