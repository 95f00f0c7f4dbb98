from __future__ import annotations

import logging
import random

import psycopg
import pytest

from batch_ingestor.domain.metrics import MetricsRecorder
from batch_ingestor.domain.models import RetryPolicy
from batch_ingestor.retry import RetryExecutor, compute_delay, is_transient

POLICY = RetryPolicy(
    max_retries=6, initial_delay_ms=100, max_delay_ms=1000, exponential_backoff=True, jitter=False
)


@pytest.mark.parametrize(
    ("attempt", "expected_ms"),
    [(1, 100), (2, 200), (3, 400), (4, 800), (5, 1000), (6, 1000)],
)
def test_exponential_delay_doubles_until_capped(attempt: int, expected_ms: float) -> None:
    assert compute_delay(POLICY, attempt) == expected_ms


def test_linear_delay_grows_by_initial_delay() -> None:
    policy = POLICY.model_copy(update={"exponential_backoff": False})

    assert [compute_delay(policy, n) for n in (1, 2, 3)] == [100, 200, 300]


def test_jitter_adds_at_most_a_quarter_of_the_delay() -> None:
    policy = POLICY.model_copy(update={"jitter": True})
    rng = random.Random(1234)

    delays = [compute_delay(policy, 3, rng) for _ in range(200)]

    assert all(400 <= delay <= 500 for delay in delays)
    assert len(set(delays)) > 1


@pytest.mark.parametrize(
    "exc",
    [
        TimeoutError("statement timeout"),
        ConnectionResetError("reset by peer"),
        OSError("broken pipe"),
        psycopg.OperationalError("server closed the connection unexpectedly"),
        RuntimeError("deadlock detected"),
        RuntimeError("Network is unreachable"),
    ],
)
def test_transient_failures(exc: BaseException) -> None:
    assert is_transient(exc) is True


@pytest.mark.parametrize(
    "exc",
    [
        ValueError("invalid input syntax for type integer"),
        psycopg.errors.UniqueViolation("duplicate key value"),
        psycopg.ProgrammingError("connection string in a syntax error"),
        KeyboardInterrupt(),
    ],
)
def test_permanent_failures(exc: BaseException) -> None:
    assert is_transient(exc) is False


class _Operation:
    def __init__(self, failures: list[BaseException]) -> None:
        self._failures = list(failures)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._failures:
            raise self._failures.pop(0)
        return "done"


@pytest.mark.asyncio
async def test_executor_retries_transient_failures_with_policy_delays() -> None:
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    metrics = MetricsRecorder()
    executor = RetryExecutor(POLICY, metrics=metrics, sleep=fake_sleep)
    operation = _Operation([TimeoutError("t1"), TimeoutError("t2"), TimeoutError("t3")])

    assert await executor.execute(operation) == "done"
    assert operation.calls == 4
    assert slept == [0.1, 0.2, 0.4]
    assert metrics.snapshot().retry_count == 3


@pytest.mark.asyncio
async def test_retry_warnings_report_attempt_and_budget(caplog) -> None:
    async def fake_sleep(seconds: float) -> None:
        return None

    policy = RetryPolicy(max_retries=2, initial_delay_ms=10, max_delay_ms=100, jitter=False)
    executor = RetryExecutor(policy, sleep=fake_sleep)
    operation = _Operation([TimeoutError("t1"), TimeoutError("t2")])

    with caplog.at_level(logging.WARNING, logger="batch_ingestor.retry"):
        assert await executor.execute(operation) == "done"

    retries = [r for r in caplog.records if r.getMessage().startswith("[RETRY]")]
    assert [r.attempt for r in retries] == [1, 2]
    assert all(r.max_retries == 2 for r in retries)
    assert "attempt 1/2. Retrying in 10ms" in retries[0].getMessage()


@pytest.mark.asyncio
async def test_executor_gives_up_after_max_retries_and_reraises_last_error() -> None:
    async def fake_sleep(seconds: float) -> None:
        return None

    policy = RetryPolicy(max_retries=3, initial_delay_ms=10, max_delay_ms=100, jitter=False)
    executor = RetryExecutor(policy, sleep=fake_sleep)
    errors = [TimeoutError(f"t{i}") for i in range(10)]
    operation = _Operation(errors)

    with pytest.raises(TimeoutError, match="t3"):
        await executor.execute(operation)
    assert operation.calls == 4


@pytest.mark.asyncio
async def test_executor_does_not_retry_permanent_failures() -> None:
    executor = RetryExecutor(POLICY)
    operation = _Operation([ValueError("bad row")])

    with pytest.raises(ValueError, match="bad row"):
        await executor.execute(operation)
    assert operation.calls == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("policy", [None, RetryPolicy(max_retries=0)])
async def test_disabled_executor_runs_exactly_once(policy) -> None:
    executor = RetryExecutor(policy)
    operation = _Operation([TimeoutError("once")])

    assert executor.enabled is False
    with pytest.raises(TimeoutError):
        await executor.execute(operation)
    assert operation.calls == 1
