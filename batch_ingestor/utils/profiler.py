"""
Process resource sampling for the batch ingestor.

``PerformanceSampler`` runs a background thread that periodically samples the
current process with psutil:
- CPU percent from the CPU-time delta over the wall-clock delta, normalized by
  core count
- RSS and the peak RSS seen so far
- Thread count and Python GC collections per generation

The pipeline reads ``latest_cpu_percent`` before every batch to decide whether
to throttle, and the metrics recorder keeps the peak-CPU sample.

``profile_block`` builds on the sampler to profile a whole block of code (wall
time, peak RSS, tracemalloc peak, CPU percent); the CLI uses it around a load.

Usage examples:
    from batch_ingestor.utils.profiler import PerformanceSampler, profile_block

    with PerformanceSampler(interval_ms=500) as sampler:
        ...
        print(sampler.latest)

    with profile_block("csv-load") as stats:
        ingestor.ingest(rows, "public.readings")
    print(stats.duration_seconds, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import gc
import threading
import time
import tracemalloc
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional

import psutil

from batch_ingestor.domain.metrics import PerformanceSnapshot
from batch_ingestor.utils.logging import get_logger

log = get_logger(__name__)


class PerformanceSampler:
    """
    Periodic CPU/memory sampler for the current process.

    Parameters
    ----------
    interval_ms : int
        Sampling period in milliseconds.
    on_sample : callable, optional
        Invoked from the sampler thread with every new ``PerformanceSnapshot``.
    process : psutil.Process, optional
        Process to observe; defaults to the current one.
    """

    def __init__(
        self,
        interval_ms: int = 1000,
        on_sample: Optional[Callable[[PerformanceSnapshot], None]] = None,
        process: Optional[psutil.Process] = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be greater than 0")
        self.interval_ms = interval_ms
        self._on_sample = on_sample
        self._process = process or psutil.Process()
        self._cpu_count = psutil.cpu_count() or 1
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_wall = time.monotonic()
        self._last_cpu = self._cpu_seconds()
        self._peak_rss = 0
        self._latest: Optional[PerformanceSnapshot] = None
        self._peak: Optional[PerformanceSnapshot] = None

    def _cpu_seconds(self) -> float:
        times = self._process.cpu_times()
        return times.user + times.system

    def sample(self) -> PerformanceSnapshot:
        """Take one sample now, update ``latest``/``peak`` and notify ``on_sample``."""
        with self._lock:
            now = time.monotonic()
            cpu_now = self._cpu_seconds()
            wall_delta = now - self._last_wall
            cpu_percent = 0.0
            if wall_delta > 0:
                cpu_percent = (cpu_now - self._last_cpu) / (wall_delta * self._cpu_count) * 100.0
                cpu_percent = min(100.0, max(0.0, cpu_percent))
            self._last_wall = now
            self._last_cpu = cpu_now

            rss = self._process.memory_info().rss
            self._peak_rss = max(self._peak_rss, rss)
            snapshot = PerformanceSnapshot(
                cpu_percent=cpu_percent,
                rss_bytes=rss,
                peak_rss_bytes=self._peak_rss,
                thread_count=self._process.num_threads(),
                gc_collections=tuple(stat["collections"] for stat in gc.get_stats()[:3]),  # type: ignore[arg-type]
                timestamp=datetime.now(timezone.utc),
            )
            self._latest = snapshot
            if self._peak is None or snapshot.cpu_percent > self._peak.cpu_percent:
                self._peak = snapshot

        if self._on_sample is not None:
            self._on_sample(snapshot)
        return snapshot

    @property
    def latest(self) -> Optional[PerformanceSnapshot]:
        with self._lock:
            return self._latest

    @property
    def peak(self) -> Optional[PerformanceSnapshot]:
        """Sample with the highest CPU percent observed so far."""
        with self._lock:
            return self._peak

    @property
    def latest_cpu_percent(self) -> float:
        latest = self.latest
        return latest.cpu_percent if latest is not None else 0.0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(timeout=self.interval_ms / 1000.0):
            try:
                self.sample()
            except psutil.Error:
                # Process may be exiting; stop sampling quietly.
                log.debug("Performance sampling stopped", exc_info=True)
                return

    def start(self) -> "PerformanceSampler":
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="performance-sampler", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=max(1.0, self.interval_ms / 1000.0))
            self._thread = None

    def __enter__(self) -> "PerformanceSampler":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    peak_traced_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, enable_tracemalloc: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        RSS sampling interval. Lower = more accurate peak, higher overhead.
    enable_tracemalloc : bool
        Whether to track peak Python-level allocations with tracemalloc.
    """
    stats = ProfileStats(label=label)
    sampler = PerformanceSampler(interval_ms=sample_interval_ms)

    tracemalloc_was_running = tracemalloc.is_tracing()
    if enable_tracemalloc and not tracemalloc_was_running:
        tracemalloc.start()

    process = psutil.Process()
    cpu_start = sum(process.cpu_times()[:2])
    stats.start_ts = time.perf_counter()
    sampler.start()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        sampler.stop()

        stats.peak_rss_bytes = sampler.sample().peak_rss_bytes
        if stats.duration_seconds > 0:
            cpu_used = sum(process.cpu_times()[:2]) - cpu_start
            cores = psutil.cpu_count() or 1
            stats.cpu_percent = min(100.0, cpu_used / (stats.duration_seconds * cores) * 100.0)

        if enable_tracemalloc and tracemalloc.is_tracing():
            _, peak_traced = tracemalloc.get_traced_memory()
            stats.peak_traced_bytes = peak_traced
            if not tracemalloc_was_running:
                tracemalloc.stop()


__all__ = ["PerformanceSampler", "ProfileStats", "profile_block"]
