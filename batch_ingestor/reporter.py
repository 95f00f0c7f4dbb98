from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rich import box
from rich.console import Console
from rich.table import Table

from batch_ingestor.domain.metrics import IngestMetrics
from batch_ingestor.utils.profiler import ProfileStats


def _read_cgroup(path: str) -> Optional[str]:
    try:
        return Path(path).read_text().strip()
    except (FileNotFoundError, PermissionError, OSError):
        return None


def _format_memory(mem_bytes: int) -> str:
    mem_gb = mem_bytes / (1024**3)
    if mem_gb >= 1:
        return f"{mem_gb:.1f}GB"
    return f"{mem_bytes / (1024**2):.0f}MB"


def get_container_resources() -> Dict[str, Optional[str]]:
    """
    Get container resource constraints.

    Environment variables (``INGEST_CPU_LIMIT``, ``INGEST_MEMORY_LIMIT``) win over
    cgroup v2 limits. Returns a dict with 'cpus' and 'memory' keys.
    """
    resources: Dict[str, Optional[str]] = {
        "cpus": os.environ.get("INGEST_CPU_LIMIT"),
        "memory": os.environ.get("INGEST_MEMORY_LIMIT"),
    }

    if resources["cpus"] is None:
        cpu_max = _read_cgroup("/sys/fs/cgroup/cpu.max")
        parts = cpu_max.split() if cpu_max else []
        if len(parts) == 2 and parts[0] != "max":
            try:
                resources["cpus"] = f"{int(parts[0]) / int(parts[1]):.1f}"
            except ValueError:
                pass

    if resources["memory"] is None:
        memory_max = _read_cgroup("/sys/fs/cgroup/memory.max")
        if memory_max and memory_max != "max":
            try:
                resources["memory"] = _format_memory(int(memory_max))
            except ValueError:
                pass

    return resources


def metrics_rows(
    metrics: IngestMetrics, profile: Optional[ProfileStats] = None
) -> List[Tuple[str, str]]:
    """Label/value pairs shown in the summary table, in display order."""
    rows = [
        ("Rows processed", f"{metrics.rows_processed:,}"),
        ("Rows failed", f"{metrics.rows_failed:,}"),
        ("Batches", f"{metrics.batches_completed:,}"),
        ("Errors", str(metrics.error_count)),
        ("Retries", str(metrics.retry_count)),
        ("Elapsed (s)", f"{metrics.elapsed_seconds:.2f}"),
        ("Throughput (rows/s)", f"{metrics.rows_per_second:,.2f}"),
        (
            "Batch min / avg / max (ms)",
            f"{metrics.min_batch_seconds * 1000:.1f} / "
            f"{metrics.avg_batch_seconds * 1000:.1f} / "
            f"{metrics.max_batch_seconds * 1000:.1f}",
        ),
    ]
    if metrics.peak_performance is not None:
        rows.append(("Peak sample", str(metrics.peak_performance)))
    if profile is not None:
        if profile.peak_rss_bytes is not None:
            rows.append(("Peak RSS (MB)", f"{profile.peak_rss_bytes / (1024 * 1024):.2f}"))
        if profile.peak_traced_bytes is not None:
            rows.append(("Peak traced (MB)", f"{profile.peak_traced_bytes / (1024 * 1024):.2f}"))
        if profile.cpu_percent is not None:
            rows.append(("CPU %", f"{profile.cpu_percent:.1f}"))
    return rows


def print_metrics(
    metrics: IngestMetrics,
    table_name: str,
    profile: Optional[ProfileStats] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render an ingestion summary as a rich table.

    Displays container resource constraints in the title when available.
    """
    console = console or Console()

    resources = get_container_resources()
    resource_parts = []
    if resources["cpus"]:
        resource_parts.append(f"CPU: {resources['cpus']} cores")
    if resources["memory"]:
        resource_parts.append(f"Memory: {resources['memory']}")

    title = f"Ingestion into {table_name}"
    if resource_parts:
        title = f"{title}\n[dim]Container Resources: {' │ '.join(resource_parts)}[/dim]"

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="bold green")

    for label, value in metrics_rows(metrics, profile):
        style = "red" if label in ("Rows failed", "Errors") and value != "0" else None
        table.add_row(label, value, style=style)

    console.print(table)


__all__ = ["get_container_resources", "metrics_rows", "print_metrics"]
