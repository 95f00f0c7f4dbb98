"""
Batch Ingestor - high-throughput bulk inserts for relational databases.

Streams records from any (async) iterable into a table through a bounded
producer/consumer pipeline:

- Batching with multi-row INSERT statements sized to the dialect's parameter limit
- Bounded in-flight batches for constant memory
- Concurrent consumers with per-batch transactions
- Retries with exponential backoff and jitter for transient failures
- Optional CPU throttling and process performance sampling
- Thread-safe metrics with progress callbacks
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from batch_ingestor.config import Settings, get_settings
from batch_ingestor.dialects import Dialect, SqlDialect, available_dialects, get_dialect
from batch_ingestor.domain import (
    IngestMetrics,
    IngestOptions,
    MetricsRecorder,
    PerformanceSnapshot,
    RetryPolicy,
)
from batch_ingestor.exceptions import BatchIngestError, ColumnLimitError, IngestCancelledError
from batch_ingestor.ingestor import BatchIngestor
from batch_ingestor.mappers import DefaultRowMapper, ModelRowMapper, RowMapper
from batch_ingestor.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Ingestion
    "BatchIngestor",
    "IngestOptions",
    "RetryPolicy",
    "IngestMetrics",
    "MetricsRecorder",
    "PerformanceSnapshot",
    # Dialects
    "Dialect",
    "SqlDialect",
    "available_dialects",
    "get_dialect",
    # Mapping
    "RowMapper",
    "DefaultRowMapper",
    "ModelRowMapper",
    # Errors
    "BatchIngestError",
    "ColumnLimitError",
    "IngestCancelledError",
    # Logging
    "configure_logging",
    "get_logger",
]
