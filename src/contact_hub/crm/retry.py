"""Timeout + exponential backoff wrapper for individual CRM calls.

call_with_retry() runs a zero-argument coroutine factory up to
``policy.max_attempts`` times:
- Each attempt gets its own ``timeout_seconds`` budget (not cumulative).
- Between attempts it waits ``initial_delay_seconds * 2 ** (attempt - 1)``,
  no jitter (2s, 4s with the default policy).
- Non-retryable errors (see crm.errors.is_retryable_error) propagate on
  first occurrence without any wait.
- Once attempts are exhausted the error from the *last* attempt is raised.

Built on tenacity's AsyncRetrying, the same library used for the other
outbound HTTP integrations. The wrapper holds no state between calls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.contact_hub.crm.errors import CallTimeoutError, is_retryable_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Immutable retry configuration for one call site."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    initial_delay_seconds: float = Field(default=2.0, ge=0)

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout_seconds * 1000)

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds after the given (1-based) failed attempt."""
        return self.initial_delay_seconds * 2 ** (attempt - 1)


DEFAULT_RETRY_POLICY = RetryPolicy(max_attempts=3, timeout_seconds=10.0, initial_delay_seconds=2.0)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    operation_name: str = "hubspot_call",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Execute ``operation`` with per-attempt timeout and exponential backoff.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        policy: Attempts, per-attempt timeout and initial backoff delay.
        operation_name: Label included in every log line.
        sleep: Awaitable sleep used between attempts.

    Returns:
        The result of the first successful attempt.

    Raises:
        The first non-retryable error, or the last attempt's error once
        ``policy.max_attempts`` is exhausted.
    """

    def _log_backoff(retry_state: RetryCallState) -> None:
        logger.info(
            "retry.backing_off",
            operation=operation_name,
            attempt=retry_state.attempt_number,
            delay_ms=int(retry_state.next_action.sleep * 1000),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.initial_delay_seconds, exp_base=2, min=0),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_log_backoff,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            attempt_number = attempt.retry_state.attempt_number
            try:
                result = await _run_with_timeout(operation, policy)
            except Exception as exc:
                logger.warning(
                    "retry.attempt_failed",
                    operation=operation_name,
                    attempt=attempt_number,
                    max_attempts=policy.max_attempts,
                    error=str(exc),
                    retryable=is_retryable_error(exc),
                )
                raise

            if attempt_number > 1:
                logger.info(
                    "retry.recovered",
                    operation=operation_name,
                    attempt=attempt_number,
                    max_attempts=policy.max_attempts,
                )
            return result

    # AsyncRetrying with reraise=True never falls through
    raise RuntimeError(f"{operation_name} exited retry loop without a result")


async def _run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
) -> T:
    try:
        return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
    except asyncio.TimeoutError:
        raise CallTimeoutError(policy.timeout_ms) from None
