"""
Retry executor for batch writes.

Wraps an async unit of work in a tenacity ``AsyncRetrying`` loop driven by a
``RetryPolicy``: only transient failures are retried, delays follow linear or
exponential backoff capped at ``max_delay_ms`` with optional jitter, and the
last failure is re-raised unchanged once attempts run out.
"""

from __future__ import annotations

import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import asyncpg
import psycopg
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from batch_ingestor.domain.metrics import MetricsRecorder
from batch_ingestor.domain.models import RetryPolicy
from batch_ingestor.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    OSError,
    psycopg.OperationalError,
    psycopg.InterfaceError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.QueryCanceledError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.TooManyConnectionsError,
)

_PERMANENT_TYPES: tuple[type[BaseException], ...] = (
    psycopg.IntegrityError,
    psycopg.DataError,
    psycopg.ProgrammingError,
    asyncpg.exceptions.IntegrityConstraintViolationError,
    asyncpg.exceptions.DataError,
    asyncpg.exceptions.SyntaxOrAccessError,
)

_TRANSIENT_MARKERS = ("timeout", "deadlock", "connection", "network")


def is_transient(exc: BaseException) -> bool:
    """
    Classify a failure as transient (worth retrying) or permanent.

    Timeouts, connectivity faults and deadlocks are transient; constraint,
    data and programming errors are permanent. Unknown exception types fall back
    to a keyword check on the message.
    """
    if not isinstance(exc, Exception) or isinstance(exc, _PERMANENT_TYPES):
        return False
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def compute_delay(
    policy: RetryPolicy, attempt: int, rng: Optional[random.Random] = None
) -> float:
    """
    Delay in milliseconds before retry number ``attempt`` (1-based).
    """
    if policy.exponential_backoff:
        delay = policy.initial_delay_ms * (2 ** (attempt - 1))
    else:
        delay = policy.initial_delay_ms * attempt
    delay = min(delay, policy.max_delay_ms)
    if policy.jitter and delay > 0:
        delay += (rng or random).uniform(0, delay / 4)
    return float(delay)


class wait_policy_backoff(wait_base):  # noqa: N801 - tenacity naming convention
    """tenacity wait strategy implementing ``compute_delay`` (returns seconds)."""

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None) -> None:
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_delay(self.policy, retry_state.attempt_number, self.rng) / 1000.0


class RetryExecutor:
    """
    Run async operations under a retry policy.

    Parameters
    ----------
    policy : RetryPolicy | None
        ``None`` or ``max_retries == 0`` executes the operation exactly once.
    metrics : MetricsRecorder | None
        When given, every scheduled retry increments ``retry_count``.
    sleep : callable, optional
        Async sleep used between attempts (tests inject a recorder).
    rng : random.Random, optional
        Source of jitter.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy],
        metrics: Optional[MetricsRecorder] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.policy = policy
        self._metrics = metrics
        self._sleep = sleep
        self._rng = rng

    @property
    def enabled(self) -> bool:
        return self.policy is not None and self.policy.max_retries > 0

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        if self._metrics is not None:
            self._metrics.increment_retry_count()
        max_retries = self.policy.max_retries if self.policy is not None else 0
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay_ms = retry_state.next_action.sleep * 1000 if retry_state.next_action else 0.0
        log.warning(
            f"[RETRY] Transient failure on attempt {retry_state.attempt_number}/"
            f"{max_retries}. Retrying in {delay_ms:.0f}ms",
            extra={
                "attempt": retry_state.attempt_number,
                "max_retries": max_retries,
                "delay_ms": round(delay_ms, 1),
                "error": repr(exc),
            },
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await ``operation()`` until it succeeds, fails permanently, or retries run out.
        """
        policy = self.policy
        if policy is None or policy.max_retries <= 0:
            return await operation()

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_policy_backoff(policy, self._rng),
            retry=retry_if_exception(is_transient),
            before_sleep=self._before_sleep,
            reraise=True,
            **kwargs,
        )
        async for attempt in retrying:
            with attempt:
                result = await operation()
        return result


__all__ = ["RetryExecutor", "compute_delay", "is_transient", "wait_policy_backoff"]
