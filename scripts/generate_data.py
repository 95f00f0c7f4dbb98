"""
Data generation and loading script for the batch ingestor.

Writes deterministic synthetic sensor readings to CSV and optionally loads them
into Postgres through ``BatchIngestor`` (typed records via ``ModelRowMapper``).
"""

from __future__ import annotations

import asyncio
import sys
import tempfile
import time
from pathlib import Path

import psycopg
import typer

from batch_ingestor.config import build_dsn, get_settings
from batch_ingestor.dialects import PostgresDialect
from batch_ingestor.domain.metrics import IngestMetrics
from batch_ingestor.infrastructure.db_factory import PooledConnectionFactory
from batch_ingestor.ingestor import BatchIngestor
from batch_ingestor.mappers import ModelRowMapper
from batch_ingestor.reporter import print_metrics
from batch_ingestor.sample_data import (
    READINGS_DDL,
    SensorReading,
    generate_readings,
    read_readings_csv,
    write_readings_csv,
)
from batch_ingestor.utils.logging import configure_logging

app = typer.Typer(help="Generate synthetic sensor readings and load them with the batch ingestor.")


def _build_dsn(dsn_override: str | None) -> str:
    if dsn_override:
        return dsn_override
    return build_dsn()


def _ensure_table(dsn: str, table: str) -> None:
    with psycopg.connect(dsn, autocommit=True) as conn:
        conn.execute(READINGS_DDL.format(table=table))


async def _load_csv(dsn: str, csv_path: Path, table: str) -> IngestMetrics:
    options = get_settings().ingest_options()
    async with PooledConnectionFactory(dsn, max_size=options.parallelism) as factory:
        ingestor: BatchIngestor[SensorReading] = BatchIngestor(
            factory, PostgresDialect(), ModelRowMapper(SensorReading), options
        )
        return await ingestor.ingest_async(read_readings_csv(csv_path), table)


@app.command()
def main(
    rows: int = typer.Option(
        100_000,
        "--rows",
        "-r",
        help="Number of readings to generate.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Optional CSV output path (if omitted, a temp file will be used).",
    ),
    table: str = typer.Option(
        "public.sensor_readings",
        "--table",
        "-t",
        help="Target table; created if missing.",
    ),
    dsn: str | None = typer.Option(
        None,
        "--dsn",
        help="Optional DSN override for Postgres.",
    ),
    no_load: bool = typer.Option(
        False,
        "--no-load",
        help="Only generate CSV; skip loading into Postgres.",
    ),
) -> None:
    """
    Generate synthetic readings and optionally load them through the ingestor.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    start = time.perf_counter()
    if output:
        csv_path = output
        csv_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        tmpdir = Path(tempfile.mkdtemp(prefix="ingest_csv_"))
        csv_path = tmpdir / "readings.csv"

    typer.echo(f"Generating {rows:,} readings -> {csv_path} (seed={seed})")
    write_readings_csv(csv_path, generate_readings(rows, seed=seed))
    gen_duration = time.perf_counter() - start
    typer.echo(
        f"CSV generation completed in {gen_duration:.2f}s ({rows / gen_duration:,.0f} rows/s)"
    )

    if no_load:
        typer.echo("Skipping load (no-load flag set).")
        return

    conn_dsn = _build_dsn(dsn)
    _ensure_table(conn_dsn, table)
    typer.echo(f"Loading CSV into {table} via BatchIngestor...")
    metrics = asyncio.run(_load_csv(conn_dsn, csv_path, table))
    print_metrics(metrics, table)


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
