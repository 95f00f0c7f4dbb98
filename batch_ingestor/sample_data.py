"""
Synthetic sensor readings used by the CLI, the data script and the tests.

Generation is deterministic for a given seed so runs are comparable.
"""

from __future__ import annotations

import csv
import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from pydantic import BaseModel, Field

STATUSES = ("ok", "ok", "ok", "warn", "error")

READINGS_COLUMNS = (
    "sensor_id",
    "recorded_at",
    "temperature",
    "humidity",
    "status",
    "payload",
)

READINGS_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id BIGSERIAL PRIMARY KEY,
    sensor_id INTEGER NOT NULL,
    recorded_at TIMESTAMPTZ NOT NULL,
    temperature DOUBLE PRECISION NOT NULL,
    humidity DOUBLE PRECISION NOT NULL,
    status TEXT NOT NULL,
    payload JSONB NOT NULL
)
"""


class SensorReading(BaseModel):
    sensor_id: int = Field(..., ge=1)
    recorded_at: datetime
    temperature: float
    humidity: float = Field(..., ge=0, le=100)
    status: str
    payload: str = "{}"

    model_config = {"frozen": True}


def generate_readings(
    count: int,
    seed: int = 42,
    sensors: int = 500,
    start: Optional[datetime] = None,
) -> Iterator[SensorReading]:
    """
    Yield ``count`` pseudo-random readings, one second apart.

    Parameters
    ----------
    count : int
        Number of readings to produce.
    seed : int
        Deterministic RNG seed.
    sensors : int
        Number of distinct sensor ids.
    start : datetime, optional
        Timestamp of the first reading; defaults to 2024-01-01T00:00:00Z.
    """
    rng = random.Random(seed)
    base = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(count):
        sensor_id = rng.randint(1, sensors)
        yield SensorReading(
            sensor_id=sensor_id,
            recorded_at=base + timedelta(seconds=i),
            temperature=round(rng.gauss(21.0, 4.0), 2),
            humidity=round(rng.uniform(20.0, 80.0), 2),
            status=rng.choice(STATUSES),
            payload=json.dumps(
                {"firmware": f"1.{rng.randint(0, 9)}", "battery": rng.randint(5, 100)}
            ),
        )


def write_readings_csv(path: Path, readings: Iterable[SensorReading]) -> int:
    """Write readings as CSV with a header row; returns the number of rows written."""
    written = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(READINGS_COLUMNS)
        for reading in readings:
            writer.writerow(
                [
                    reading.sensor_id,
                    reading.recorded_at.isoformat(),
                    f"{reading.temperature:.2f}",
                    f"{reading.humidity:.2f}",
                    reading.status,
                    reading.payload,
                ]
            )
            written += 1
    return written


def read_readings_csv(path: Path) -> Iterator[SensorReading]:
    """Lazily parse a readings CSV written by ``write_readings_csv``."""
    with path.open("r", newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            yield SensorReading.model_validate(row)


__all__ = [
    "READINGS_COLUMNS",
    "READINGS_DDL",
    "SensorReading",
    "generate_readings",
    "read_readings_csv",
    "write_readings_csv",
]
