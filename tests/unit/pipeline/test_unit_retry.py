# tests/unit/pipeline/test_unit_retry.py — v1
"""Tests for pipeline/retry.py — backoff and retryable classification."""

from __future__ import annotations

import pytest

from conftest import FAST_RETRY
from shipyard.core.errors import PolicyViolation, StageTimeout, TransientInfraError
from shipyard.pipeline.retry import RetryPolicy, compute_delay, is_retryable, with_retry


class TestComputeDelay:
    def test_exponential_and_capped(self):
        policy = RetryPolicy(base_delay_s=1.0, backoff_factor=2.0, max_delay_s=5.0, jitter=False)
        assert [compute_delay(policy, n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_half(self):
        policy = RetryPolicy(base_delay_s=2.0, jitter=True)
        for _ in range(20):
            assert 1.0 <= compute_delay(policy, 0) <= 2.0


class TestIsRetryable:
    def test_classification(self):
        assert is_retryable(TransientInfraError("x"))
        assert is_retryable(StageTimeout("x"))
        assert not is_retryable(PolicyViolation("x"))
        assert not is_retryable(RuntimeError("x"))


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        calls = []
        attempts = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientInfraError("registry 503")
            return "ok"

        result = await with_retry(flaky, FAST_RETRY, on_attempt=attempts.append)
        assert result == "ok"
        assert attempts == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        calls = []

        async def down():
            calls.append(1)
            raise TransientInfraError("still down")

        with pytest.raises(TransientInfraError):
            await with_retry(down, FAST_RETRY)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_policy_violation_not_retried(self):
        calls = []

        async def rejected():
            calls.append(1)
            raise PolicyViolation("tests failed")

        with pytest.raises(PolicyViolation):
            await with_retry(rejected, FAST_RETRY)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_not_retried(self):
        calls = []

        async def bug():
            calls.append(1)
            raise KeyError("oops")

        with pytest.raises(KeyError):
            await with_retry(bug, FAST_RETRY)
        assert len(calls) == 1
