"""
Metrics for ingestion runs.

``MetricsRecorder`` is the single mutable accumulator shared by every consumer of
a run (and by the performance sampler thread). Readers never see it directly:
``MetricsRecorder.snapshot()`` returns an immutable ``IngestMetrics`` copy that
can be handed to callbacks, reporters, or attached to exceptions.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class PerformanceSnapshot:
    """
    One process-level resource sample.
    """

    cpu_percent: float
    rss_bytes: int
    peak_rss_bytes: int
    thread_count: int
    gc_collections: Tuple[int, int, int]
    timestamp: datetime

    @property
    def rss_mb(self) -> float:
        return self.rss_bytes / (1024 * 1024)

    @property
    def peak_rss_mb(self) -> float:
        return self.peak_rss_bytes / (1024 * 1024)

    def __str__(self) -> str:
        gen0, gen1, gen2 = self.gc_collections
        return (
            f"CPU: {self.cpu_percent:.2f}%, Memory: {self.rss_mb:.2f}MB, "
            f"GC: gen0={gen0}, gen1={gen1}, gen2={gen2}, Threads: {self.thread_count}"
        )


@dataclass(frozen=True)
class IngestMetrics:
    """
    Immutable point-in-time view of an ingestion run.

    Batch durations are in seconds and are ``0.0`` until a batch completes.
    """

    rows_processed: int = 0
    batches_completed: int = 0
    error_count: int = 0
    retry_count: int = 0
    rows_failed: int = 0
    min_batch_seconds: float = 0.0
    avg_batch_seconds: float = 0.0
    max_batch_seconds: float = 0.0
    elapsed_seconds: float = 0.0
    performance: Optional[PerformanceSnapshot] = None
    peak_performance: Optional[PerformanceSnapshot] = None

    @property
    def rows_per_second(self) -> float:
        return self.rows_processed / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict (JSON friendly) including the derived throughput."""
        payload = asdict(self)
        payload["rows_per_second"] = self.rows_per_second
        for key in ("performance", "peak_performance"):
            if payload[key] is not None:
                payload[key]["timestamp"] = payload[key]["timestamp"].isoformat()
                payload[key]["gc_collections"] = list(payload[key]["gc_collections"])
        return payload


class MetricsRecorder:
    """
    Thread-safe accumulator for one ingestion run.

    Every update is a few integer/float operations under one short-lived lock,
    so updates from event-loop tasks, the sampler thread, or worker threads are
    never lost. ``snapshot()`` copies all fields under the same lock, so a
    snapshot is internally consistent (e.g. ``avg`` always matches
    ``batches_completed``).

    Counters are not updated with lock-free compare-and-swap: Python has no
    atomic integers, so the lock is the unit of atomicity. It is held only for
    the arithmetic, never across I/O or awaits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows_processed = 0
        self._batches_completed = 0
        self._error_count = 0
        self._retry_count = 0
        self._rows_failed = 0
        self._durations_recorded = 0
        self._total_duration = 0.0
        self._min_duration: Optional[float] = None
        self._max_duration: Optional[float] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._performance: Optional[PerformanceSnapshot] = None
        self._peak_performance: Optional[PerformanceSnapshot] = None

    def start(self) -> None:
        """Start (or restart) the elapsed-time clock."""
        with self._lock:
            self._started_at = time.perf_counter()
            self._stopped_at = None

    def stop(self) -> None:
        """Freeze the elapsed-time clock."""
        with self._lock:
            if self._started_at is not None and self._stopped_at is None:
                self._stopped_at = time.perf_counter()

    def add_rows_processed(self, count: int) -> None:
        with self._lock:
            self._rows_processed += count

    def add_rows_failed(self, count: int) -> None:
        with self._lock:
            self._rows_failed += count

    def increment_batches_completed(self) -> None:
        with self._lock:
            self._batches_completed += 1

    def increment_error_count(self) -> None:
        with self._lock:
            self._error_count += 1

    def increment_retry_count(self) -> None:
        with self._lock:
            self._retry_count += 1

    def record_batch_duration(self, seconds: float) -> None:
        with self._lock:
            self._record_duration(seconds)

    def _record_duration(self, seconds: float) -> None:
        self._durations_recorded += 1
        self._total_duration += seconds
        if self._min_duration is None or seconds < self._min_duration:
            self._min_duration = seconds
        if self._max_duration is None or seconds > self._max_duration:
            self._max_duration = seconds

    def record_batch(self, rows: int, seconds: float) -> int:
        """
        Account one completed batch (rows, count and duration) in a single update.

        Returns the new number of completed batches.
        """
        with self._lock:
            self._rows_processed += rows
            self._batches_completed += 1
            self._record_duration(seconds)
            return self._batches_completed

    def update_performance(self, sample: PerformanceSnapshot) -> None:
        """Store the latest sample and keep the highest-CPU sample as the peak."""
        with self._lock:
            self._performance = sample
            peak = self._peak_performance
            if peak is None or sample.cpu_percent > peak.cpu_percent:
                self._peak_performance = sample

    @property
    def rows_processed(self) -> int:
        with self._lock:
            return self._rows_processed

    @property
    def batches_completed(self) -> int:
        with self._lock:
            return self._batches_completed

    def snapshot(self) -> IngestMetrics:
        """Return an immutable copy of the current state."""
        with self._lock:
            if self._started_at is None:
                elapsed = 0.0
            else:
                end = self._stopped_at if self._stopped_at is not None else time.perf_counter()
                elapsed = end - self._started_at
            recorded = self._durations_recorded
            return IngestMetrics(
                rows_processed=self._rows_processed,
                batches_completed=self._batches_completed,
                error_count=self._error_count,
                retry_count=self._retry_count,
                rows_failed=self._rows_failed,
                min_batch_seconds=self._min_duration or 0.0,
                avg_batch_seconds=self._total_duration / recorded if recorded else 0.0,
                max_batch_seconds=self._max_duration or 0.0,
                elapsed_seconds=elapsed,
                performance=self._performance,
                peak_performance=self._peak_performance,
            )


__all__ = ["IngestMetrics", "MetricsRecorder", "PerformanceSnapshot"]
