from __future__ import annotations

import asyncio
import csv
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import typer

from batch_ingestor.config import Settings, build_dsn, get_settings
from batch_ingestor.dialects import PostgresDialect, available_dialects, get_dialect
from batch_ingestor.domain.metrics import IngestMetrics
from batch_ingestor.domain.models import IngestOptions
from batch_ingestor.exceptions import BatchIngestError
from batch_ingestor.infrastructure.db_factory import PooledConnectionFactory
from batch_ingestor.ingestor import BatchIngestor
from batch_ingestor.mappers import DefaultRowMapper
from batch_ingestor.reporter import print_metrics
from batch_ingestor.utils.logging import configure_logging, get_logger
from batch_ingestor.utils.profiler import profile_block

app = typer.Typer(help="Batch ingestor CLI.")
log = get_logger(__name__)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    retries = settings.retry_max_retries
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"dialect={PostgresDialect.name} | batch={settings.ingest_batch_size} "
        f"parallelism={settings.ingest_parallelism} "
        f"in_flight={settings.ingest_max_in_flight_batches} retries={retries}"
    )


@app.command()
def dialects() -> None:
    """
    List the built-in SQL dialects and their parameter limits.
    """
    for name in available_dialects():
        dialect = get_dialect(name)
        typer.echo(f"{name:<10} max_parameters={dialect.max_parameters}")


def _csv_row(row: Dict[str, str]) -> Dict[str, Any]:
    # Empty CSV fields become NULLs
    return {key: (value if value != "" else None) for key, value in row.items()}


def _read_csv(path: Path) -> Iterator[Dict[str, str]]:
    with path.open("r", newline="", encoding="utf-8") as f:
        yield from csv.DictReader(f)


def _log_progress(metrics: IngestMetrics) -> None:
    log.info(
        f"[PROGRESS] rows={metrics.rows_processed:,} batches={metrics.batches_completed} "
        f"throughput={metrics.rows_per_second:,.0f} rows/s",
        extra={
            "rows_processed": metrics.rows_processed,
            "batches_completed": metrics.batches_completed,
        },
    )


async def _ingest_csv(
    csv_path: Path, table: str, options: IngestOptions, settings: Settings
) -> IngestMetrics:
    pool_size = max(settings.db_pool_max_size, options.parallelism)
    async with PooledConnectionFactory(build_dsn(settings), max_size=pool_size) as factory:
        ingestor: BatchIngestor[Dict[str, str]] = BatchIngestor(
            factory, PostgresDialect(), DefaultRowMapper(_csv_row), options
        )
        return await ingestor.ingest_async(_read_csv(csv_path), table)


@app.command()
def ingest(
    csv_path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="CSV file with a header row matching the target columns.",
    ),
    table: str = typer.Option(..., "--table", "-t", help="Target table (may be schema-qualified)."),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", help="Override rows per batch (default from settings)."
    ),
    parallelism: Optional[int] = typer.Option(
        None, "--parallelism", "-p", help="Override concurrent consumers (default from settings)."
    ),
    max_in_flight: Optional[int] = typer.Option(
        None, "--max-in-flight", help="Override the bounded queue depth."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print metrics as JSON instead of a table."),
) -> None:
    """
    Stream a CSV file into a Postgres table through the batch ingestor.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    options = settings.ingest_options(
        batch_size=batch_size,
        parallelism=parallelism,
        max_in_flight_batches=max_in_flight,
        on_progress=_log_progress,
    )

    typer.echo(
        f"Ingesting {csv_path} -> {table} "
        f"(batch={options.batch_size}, parallelism={options.parallelism})."
    )
    with profile_block(f"ingest:{table}") as stats:
        try:
            metrics = asyncio.run(_ingest_csv(csv_path, table, options, settings))
        except BatchIngestError as exc:
            typer.echo(
                f"Ingestion failed at batch {exc.batch_number} after "
                f"{exc.rows_processed_before_failure:,} rows: {exc}",
                err=True,
            )
            if exc.metrics is not None:
                print_metrics(exc.metrics, table)
            raise typer.Exit(code=1)

    if as_json:
        payload = metrics.to_dict()
        payload["profile"] = {
            "peak_rss_bytes": stats.peak_rss_bytes,
            "peak_traced_bytes": stats.peak_traced_bytes,
            "cpu_percent": stats.cpu_percent,
        }
        typer.echo(json.dumps(payload, indent=2, default=str))
        return
    print_metrics(metrics, table, profile=stats)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
