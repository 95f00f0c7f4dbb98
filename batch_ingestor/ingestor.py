"""
Public entry point for bulk ingestion.

Usage (example):
    from batch_ingestor import BatchIngestor, DefaultRowMapper, IngestOptions, RetryPolicy
    from batch_ingestor.dialects import PostgresDialect
    from batch_ingestor.infrastructure import PooledConnectionFactory

    async with PooledConnectionFactory(max_size=8) as factory:
        ingestor = BatchIngestor(
            factory,
            PostgresDialect(),
            DefaultRowMapper(lambda r: {"id": r.id, "name": r.name}),
            IngestOptions(batch_size=5000, parallelism=8, retry_policy=RetryPolicy()),
        )
        metrics = await ingestor.ingest_async(records, "public.customers")
        print(metrics.rows_processed, metrics.rows_per_second)
"""

from __future__ import annotations

import asyncio
from typing import Generic, Optional, TypeVar

from batch_ingestor.dialects.abstract import Dialect
from batch_ingestor.domain.metrics import IngestMetrics, MetricsRecorder, PerformanceSnapshot
from batch_ingestor.domain.models import IngestOptions
from batch_ingestor.exceptions import BatchIngestError, IngestCancelledError
from batch_ingestor.infrastructure.db_factory import ConnectionFactory
from batch_ingestor.mappers import RowMapper
from batch_ingestor.pipeline import BatchPipeline, RecordSource
from batch_ingestor.utils.logging import get_logger
from batch_ingestor.utils.profiler import PerformanceSampler

log = get_logger(__name__)

T = TypeVar("T")


class BatchIngestor(Generic[T]):
    """
    Stream records into a table through the bounded batch pipeline.

    Parameters
    ----------
    connection_factory : ConnectionFactory
        Opens a connection per batch attempt.
    dialect : Dialect
        SQL dialect of the target database.
    mapper : RowMapper
        Maps each record to a column/value mapping.
    options : IngestOptions, optional
        Run configuration; defaults to ``IngestOptions()``.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        dialect: Dialect,
        mapper: RowMapper[T],
        options: Optional[IngestOptions] = None,
    ) -> None:
        if connection_factory is None:
            raise ValueError("connection_factory is required")
        if dialect is None:
            raise ValueError("dialect is required")
        if mapper is None:
            raise ValueError("mapper is required")
        self._connection_factory = connection_factory
        self._dialect = dialect
        self._mapper = mapper
        self._options = options if options is not None else IngestOptions()
        self._recorder = MetricsRecorder()

    @property
    def options(self) -> IngestOptions:
        return self._options

    @property
    def metrics(self) -> IngestMetrics:
        """Snapshot of the current (or last) run, including failed runs."""
        return self._recorder.snapshot()

    async def ingest_async(
        self,
        records: RecordSource[T],
        table_name: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> IngestMetrics:
        """
        Ingest every record of ``records`` into ``table_name``.

        Raises
        ------
        ValueError
            ``records`` is None or ``table_name`` is blank.
        BatchIngestError
            A batch failed permanently or exhausted its retries.
        IngestCancelledError
            ``cancel_event`` was set before the run finished.
        """
        if records is None:
            raise ValueError("records is required")
        if table_name is None or not table_name.strip():
            raise ValueError("table_name must be a non-empty string")

        options = self._options
        recorder = MetricsRecorder()
        self._recorder = recorder
        sampler = self._build_sampler(recorder) if options.sampling_enabled else None
        pipeline: BatchPipeline[T] = BatchPipeline(
            self._connection_factory,
            self._dialect,
            self._mapper,
            options,
            table_name,
            recorder,
            sampler=sampler,
        )

        log.info(
            f"[INGEST START] table={table_name} dialect={self._dialect.name} "
            f"batch_size={options.batch_size} parallelism={options.parallelism}",
            extra={
                "table": table_name,
                "dialect": self._dialect.name,
                "batch_size": options.batch_size,
                "parallelism": options.parallelism,
                "max_in_flight_batches": options.max_in_flight_batches,
                "retries": options.retry_policy.max_retries if options.retry_policy else 0,
            },
        )

        recorder.start()
        if sampler is not None:
            sampler.start()
        try:
            await pipeline.process(records, cancel_event=cancel_event)
        except BatchIngestError as exc:
            recorder.stop()
            exc.metrics = recorder.snapshot()
            log.error(
                f"[INGEST FAILED] table={table_name} batch={exc.batch_number}",
                extra={"table": table_name, **exc.metrics.to_dict()},
            )
            raise
        except IngestCancelledError as exc:
            recorder.stop()
            exc.metrics = recorder.snapshot()
            raise
        finally:
            recorder.stop()
            if sampler is not None:
                sampler.stop()

        metrics = recorder.snapshot()
        log.info(
            f"[INGEST END] table={table_name} rows={metrics.rows_processed} "
            f"batches={metrics.batches_completed} elapsed={metrics.elapsed_seconds:.2f}s "
            f"throughput={metrics.rows_per_second:,.2f} rows/s",
            extra={"table": table_name, **metrics.to_dict()},
        )
        return metrics

    def ingest(self, records: RecordSource[T], table_name: str) -> IngestMetrics:
        """
        Blocking wrapper around ``ingest_async`` for code without an event loop.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.ingest_async(records, table_name))
        raise RuntimeError(
            "BatchIngestor.ingest() cannot run inside an event loop; await ingest_async() instead"
        )

    def _build_sampler(self, recorder: MetricsRecorder) -> PerformanceSampler:
        threshold = self._options.max_cpu_percent
        warn_over_threshold = self._options.enable_cpu_throttling and threshold > 0

        def on_sample(sample: PerformanceSnapshot) -> None:
            recorder.update_performance(sample)
            if warn_over_threshold and sample.cpu_percent > threshold:
                log.warning(
                    f"[THROTTLE] CPU {sample.cpu_percent:.2f}% above threshold {threshold:.2f}%",
                    extra={"cpu_percent": round(sample.cpu_percent, 2), "threshold": threshold},
                )

        return PerformanceSampler(
            interval_ms=self._options.performance_sample_interval_ms,
            on_sample=on_sample,
        )


__all__ = ["BatchIngestor"]
