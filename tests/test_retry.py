"""Unit tests for the retry/timeout wrapper around CRM calls.

Backoff sleeps go through the sleep_recorder fixture, so the tests observe
the exact delays without waiting for them.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
from pydantic import ValidationError

from src.contact_hub.crm.errors import (
    CallTimeoutError,
    CredentialError,
    PermanentRemoteError,
    TransientRemoteError,
)
from src.contact_hub.crm.retry import DEFAULT_RETRY_POLICY, RetryPolicy, call_with_retry


class FlakyOperation:
    """Zero-argument async callable failing with queued errors, then succeeding."""

    def __init__(self, errors: list[BaseException], result: str = "ok") -> None:
        self._errors = list(errors)
        self._result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._result


class AlwaysFailing:
    """Fails every call with a fresh error naming the attempt."""

    def __init__(self, factory) -> None:
        self._factory = factory
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        raise self._factory(self.calls)


# ── RetryPolicy ──────────────────────────────────────────────────────────────


class TestRetryPolicy:
    def test_default_policy(self):
        assert DEFAULT_RETRY_POLICY.max_attempts == 3
        assert DEFAULT_RETRY_POLICY.timeout_seconds == 10.0
        assert DEFAULT_RETRY_POLICY.initial_delay_seconds == 2.0
        assert DEFAULT_RETRY_POLICY.timeout_ms == 10000

    def test_backoff_doubles_per_attempt(self):
        policy = RetryPolicy(initial_delay_seconds=2.0)
        assert [policy.backoff_delay(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_policy_is_immutable(self):
        with pytest.raises(ValidationError):
            DEFAULT_RETRY_POLICY.max_attempts = 5

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)


# ── call_with_retry ──────────────────────────────────────────────────────────


class TestCallWithRetry:
    async def test_first_attempt_success_does_not_sleep(self, sleep_recorder):
        operation = FlakyOperation([])

        result = await call_with_retry(operation, sleep=sleep_recorder)

        assert result == "ok"
        assert operation.calls == 1
        assert sleep_recorder.delays == []

    async def test_retry_exhaustion_raises_last_error(self, sleep_recorder):
        """Always-retryable failure: exactly max_attempts calls, third error raised."""
        operation = AlwaysFailing(lambda n: TransientRemoteError(503, f"attempt {n}"))

        with pytest.raises(TransientRemoteError) as exc_info:
            await call_with_retry(operation, DEFAULT_RETRY_POLICY, sleep=sleep_recorder)

        assert operation.calls == 3
        assert "attempt 3" in str(exc_info.value)
        assert sleep_recorder.delays == [2.0, 4.0]

    async def test_non_retryable_short_circuits(self, sleep_recorder):
        """A 400-class error is raised after a single call, whatever max_attempts is."""
        operation = AlwaysFailing(lambda n: PermanentRemoteError(400, "bad property"))
        policy = RetryPolicy(max_attempts=5, timeout_seconds=1.0, initial_delay_seconds=2.0)

        with pytest.raises(PermanentRemoteError):
            await call_with_retry(operation, policy, sleep=sleep_recorder)

        assert operation.calls == 1
        assert sleep_recorder.delays == []

    async def test_credential_error_is_not_retried(self, sleep_recorder):
        operation = AlwaysFailing(lambda n: CredentialError(401, "Authentication credentials not found"))

        with pytest.raises(CredentialError):
            await call_with_retry(operation, sleep=sleep_recorder)

        assert operation.calls == 1

    async def test_unknown_error_is_not_retried(self, sleep_recorder):
        operation = AlwaysFailing(lambda n: ValueError("unexpected payload"))

        with pytest.raises(ValueError):
            await call_with_retry(operation, sleep=sleep_recorder)

        assert operation.calls == 1

    async def test_recovers_after_transient_failures(self, sleep_recorder):
        operation = FlakyOperation(
            [
                ConnectionRefusedError("connect ECONNREFUSED 127.0.0.1:443"),
                TransientRemoteError(429, "rate limited"),
            ],
            result="recovered",
        )

        result = await call_with_retry(operation, sleep=sleep_recorder)

        assert result == "recovered"
        assert operation.calls == 3
        assert sleep_recorder.delays == [2.0, 4.0]

    async def test_httpx_network_errors_are_retried(self, sleep_recorder):
        operation = FlakyOperation([httpx.ConnectError("connection reset")])

        assert await call_with_retry(operation, sleep=sleep_recorder) == "ok"
        assert operation.calls == 2

    async def test_timeout_counts_as_one_attempt(self, sleep_recorder):
        """An attempt that never resolves fails with a timeout error."""
        calls = 0

        async def never_resolves() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(60)
            return "unreachable"

        policy = RetryPolicy(max_attempts=1, timeout_seconds=0.05, initial_delay_seconds=0)

        with pytest.raises(CallTimeoutError) as exc_info:
            await call_with_retry(never_resolves, policy, sleep=sleep_recorder)

        assert calls == 1
        assert "timeout after 50ms" in str(exc_info.value).lower()

    async def test_timeout_is_retryable_and_per_attempt(self, sleep_recorder):
        attempts = 0

        async def slow_then_fast() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.sleep(60)
            return "fast"

        policy = RetryPolicy(max_attempts=2, timeout_seconds=0.05, initial_delay_seconds=0.5)

        result = await call_with_retry(slow_then_fast, policy, sleep=sleep_recorder)

        assert result == "fast"
        assert attempts == 2
        assert sleep_recorder.delays == [0.5]
