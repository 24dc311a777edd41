# src/pipeline/retry.py — v1
"""Stage-local retry policy with bounded exponential backoff.

Only retryable errors (TransientInfraError and subclasses) are retried.
Policy violations and unexpected exceptions propagate on first failure.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from shipyard.core.errors import ShipyardError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for transient infrastructure errors.

    max_attempts counts the first try: 3 means one try plus two retries.
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    max_delay_s: float = 30.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: Any) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_s=settings.retry_base_delay_s,
            backoff_factor=settings.retry_backoff_factor,
            max_delay_s=settings.retry_max_delay_s,
            jitter=settings.retry_jitter,
        )


NO_RETRY = RetryPolicy(max_attempts=1, base_delay_s=0.0, max_delay_s=0.0, jitter=False)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ShipyardError) and error.retryable


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Compute delay after a failed attempt (0-based), capped at max_delay_s."""
    delay = min(policy.base_delay_s * (policy.backoff_factor ** attempt), policy.max_delay_s)
    if policy.jitter:
        delay *= 0.5 + random.random() / 2  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    label: str = "stage",
    on_attempt: Callable[[int], None] | None = None,
) -> Any:
    """Execute an async callable, retrying retryable errors.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt.
        policy: Retry bounds.
        label: Name used in log messages.
        on_attempt: Called with the 1-based attempt number before each try.

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error.
    """
    attempt = 0
    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= policy.max_attempts:
                raise
            delay = compute_delay(policy, attempt - 1)
            logger.warning(
                "%s: %s (attempt %d/%d), retrying in %.2fs",
                label, exc, attempt, policy.max_attempts, delay,
            )
            await asyncio.sleep(delay)
