"""
Producer/consumer batch pipeline.

One producer task slices the record source into batches and feeds a bounded
``asyncio.Queue``; ``parallelism`` consumer tasks take batches off the queue and
write them. The queue depth is the only memory bound: when it is full the
producer suspends on ``put`` until a consumer frees a slot.

Each batch is owned by exactly one consumer from ``get`` to completion. Writing
a batch means: optional CPU throttling, mapping records to rows, rendering the
statements, then (under the retry executor) opening a connection, running the
statements inside a per-batch transaction when configured, and committing.

A batch that fails terminally is counted, recorded as ``BatchIngestError`` and
halts the run: the producer stops pulling from the source, flushes what it has
already pulled, and closes the queue; consumers finish and drain what is
queued. The first failure is raised once every task is done, so every record
pulled from the source ends up either processed or in a failed batch.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import time
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from batch_ingestor.dialects.abstract import Dialect
from batch_ingestor.domain.metrics import MetricsRecorder
from batch_ingestor.domain.models import IngestOptions
from batch_ingestor.exceptions import BatchIngestError, IngestCancelledError
from batch_ingestor.infrastructure.db_factory import ConnectionFactory, TargetConnection
from batch_ingestor.mappers import RowMapper
from batch_ingestor.retry import RetryExecutor
from batch_ingestor.statements import Statement, build_statements
from batch_ingestor.utils.logging import get_logger
from batch_ingestor.utils.profiler import PerformanceSampler

log = get_logger(__name__)

T = TypeVar("T")

RecordSource = Union[Iterable[T], AsyncIterable[T]]

# Synchronous sources hand control back to the event loop this often.
_SYNC_YIELD_EVERY = 1000


async def iterate_records(records: RecordSource[T]) -> AsyncIterator[T]:
    """Iterate a sync or async record source lazily."""
    if hasattr(records, "__aiter__"):
        async for item in records:  # type: ignore[union-attr]
            yield item
        return
    for count, item in enumerate(records, start=1):  # type: ignore[arg-type]
        yield item
        if count % _SYNC_YIELD_EVERY == 0:
            await asyncio.sleep(0)


class BatchPipeline(Generic[T]):
    """
    Bounded producer/consumer engine for one ingestion run.

    Parameters
    ----------
    connection_factory : ConnectionFactory
        Opens one connection per batch attempt.
    dialect : Dialect
        Renders statements and bounds parameters per statement.
    mapper : RowMapper
        Maps records to ordered column/value rows.
    options : IngestOptions
        Validated run configuration.
    table_name : str
        Target table, possibly schema-qualified.
    metrics : MetricsRecorder
        Shared accumulator for the run.
    sampler : PerformanceSampler, optional
        Source of CPU samples for throttling.
    retry_executor : RetryExecutor, optional
        Defaults to one built from ``options.retry_policy``.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        dialect: Dialect,
        mapper: RowMapper[T],
        options: IngestOptions,
        table_name: str,
        metrics: MetricsRecorder,
        sampler: Optional[PerformanceSampler] = None,
        retry_executor: Optional[RetryExecutor] = None,
    ) -> None:
        self._connection_factory = connection_factory
        self._dialect = dialect
        self._mapper = mapper
        self._options = options
        self._table_name = table_name
        self._metrics = metrics
        self._sampler = sampler
        self._retry = retry_executor or RetryExecutor(options.retry_policy, metrics=metrics)
        self._batch_numbers = itertools.count(1)
        self._halted = asyncio.Event()
        self._failures: List[BatchIngestError] = []

    @property
    def failures(self) -> List[BatchIngestError]:
        """Batch failures recorded so far, in the order they happened."""
        return list(self._failures)

    async def process(
        self,
        records: RecordSource[T],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Run the producer and consumers until the source is drained.

        Raises
        ------
        BatchIngestError
            The first batch that failed terminally.
        IngestCancelledError
            ``cancel_event`` was set before the run finished.
        """
        queue: asyncio.Queue[Optional[List[T]]] = asyncio.Queue(
            maxsize=self._options.max_in_flight_batches
        )
        producer = asyncio.create_task(self._produce(records, queue), name="ingest-producer")
        consumers = [
            asyncio.create_task(self._consume(queue), name=f"ingest-consumer-{worker}")
            for worker in range(self._options.parallelism)
        ]
        work = asyncio.gather(producer, *consumers, return_exceptions=True)

        try:
            if cancel_event is None:
                results = await work
            else:
                results = await self._until_cancelled(work, cancel_event)
        except asyncio.CancelledError:
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await work
            raise

        producer_result, *consumer_results = results
        for result in consumer_results:
            if isinstance(result, BaseException):
                raise result
        if self._failures:
            raise self._failures[0]
        if isinstance(producer_result, BaseException):
            raise producer_result

    async def _until_cancelled(
        self, work: "asyncio.Future[List[Any]]", cancel_event: asyncio.Event
    ) -> List[Any]:
        watcher = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
        if work.done():
            return work.result()

        log.warning(
            "[INGEST CANCELLED] Cancel event set; stopping producer and consumers",
            extra={"table": self._table_name},
        )
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise IngestCancelledError()

    async def _produce(self, records: RecordSource[T], queue: "asyncio.Queue[Optional[List[T]]]") -> None:
        batch_size = self._options.batch_size
        batch: List[T] = []
        source_error: Optional[Exception] = None
        try:
            async for item in iterate_records(records):
                batch.append(item)
                if len(batch) >= batch_size:
                    await queue.put(batch)
                    batch = []
                if self._halted.is_set():
                    log.info(
                        "[PRODUCER HALTED] Batch failure recorded; no more records will be read",
                        extra={"table": self._table_name},
                    )
                    break
        except Exception as exc:
            log.error("[SOURCE FAILED] Record source raised", exc_info=exc)
            source_error = exc

        if batch:
            await queue.put(batch)
        for _ in range(self._options.parallelism):
            await queue.put(None)

        if source_error is not None:
            raise source_error

    async def _consume(self, queue: "asyncio.Queue[Optional[List[T]]]") -> None:
        while True:
            batch = await queue.get()
            try:
                if batch is None:
                    return
                await self._process_batch(batch)
            finally:
                queue.task_done()

    async def _throttle(self, batch_number: int) -> None:
        options = self._options
        if not options.enable_cpu_throttling or options.max_cpu_percent <= 0:
            return
        if self._sampler is None:
            return
        cpu = self._sampler.latest_cpu_percent
        if cpu > options.max_cpu_percent:
            log.debug(
                f"[THROTTLE] Batch {batch_number} - CPU: {cpu:.2f}% > {options.max_cpu_percent:.2f}%",
                extra={"batch": batch_number, "cpu_percent": round(cpu, 2)},
            )
            await asyncio.sleep(options.throttle_delay_ms / 1000.0)

    async def _process_batch(self, batch: List[T]) -> None:
        batch_number = next(self._batch_numbers)
        await self._throttle(batch_number)

        started = time.perf_counter()
        try:
            rows = [self._mapper.map(record) for record in batch]
            columns = list(rows[0].keys())
            statements = build_statements(self._dialect, self._table_name, columns, rows)
            await self._retry.execute(lambda: self._write(statements))
        except Exception as exc:
            self._record_failure(batch_number, len(batch), exc)
            return

        duration = time.perf_counter() - started
        completed = self._metrics.record_batch(len(batch), duration)
        log.debug(
            f"[BATCH DONE] Batch {batch_number}: {len(batch)} rows in {duration * 1000:.2f}ms",
            extra={
                "batch": batch_number,
                "rows": len(batch),
                "statements": len(statements),
                "duration_ms": round(duration * 1000, 2),
            },
        )

        if self._options.on_batch_completed is not None:
            self._invoke_callback(self._options.on_batch_completed, batch_number, duration)
        if self._options.on_progress is not None and completed % self._options.progress_interval == 0:
            self._invoke_callback(self._options.on_progress, self._metrics.snapshot())

    async def _write(self, statements: Sequence[Statement]) -> None:
        """One attempt: fresh connection, optional transaction, every statement."""
        async with self._connection_factory.connection() as conn:
            if self._options.use_transactions and self._options.transaction_per_batch:
                async with conn.transaction():
                    await self._execute_all(conn, statements)
            else:
                await self._execute_all(conn, statements)

    async def _execute_all(self, conn: TargetConnection, statements: Sequence[Statement]) -> None:
        timeout = self._options.command_timeout_seconds or None
        for statement in statements:
            async with asyncio.timeout(timeout):
                await conn.execute(statement.sql, statement.params)

    def _record_failure(self, batch_number: int, row_count: int, exc: Exception) -> None:
        self._metrics.increment_error_count()
        self._metrics.add_rows_failed(row_count)
        rows_before = self._metrics.rows_processed
        log.error(
            f"[BATCH FAILED] Failed to process batch {batch_number}",
            exc_info=exc,
            extra={
                "batch": batch_number,
                "rows": row_count,
                "rows_processed_before_failure": rows_before,
                "error_type": type(exc).__name__,
            },
        )
        error = BatchIngestError(
            f"Failed to process batch {batch_number}: {exc}",
            batch_number=batch_number,
            rows_processed_before_failure=rows_before,
        )
        error.__cause__ = exc
        self._failures.append(error)
        self._halted.set()

    def _invoke_callback(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:  # noqa: BLE001 - observer errors must not fail a written batch
            log.exception(
                "[CALLBACK FAILED] Ingestion callback raised",
                extra={"callback": getattr(callback, "__name__", repr(callback))},
            )


__all__ = ["BatchPipeline", "RecordSource", "iterate_records"]
