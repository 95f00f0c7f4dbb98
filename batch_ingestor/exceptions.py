"""
Exception types raised by the batch ingestor.

Configuration problems surface as pydantic ``ValidationError`` (a ``ValueError``)
when the run models are constructed; everything here is raised while a run is
in progress.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from batch_ingestor.domain.metrics import IngestMetrics


class ColumnLimitError(ValueError):
    """Raised when a single row can never fit in one statement for a dialect."""

    def __init__(self, column_count: int, max_parameters: int) -> None:
        super().__init__(
            f"Cannot insert rows: column count ({column_count}) exceeds maximum "
            f"parameters per statement ({max_parameters})."
        )
        self.column_count = column_count
        self.max_parameters = max_parameters


class BatchIngestError(Exception):
    """
    A batch failed permanently or exhausted its retries.

    Attributes
    ----------
    batch_number : int
        1-based number of the batch that failed.
    rows_processed_before_failure : int
        Rows durably written by the run when the failure was recorded.
    metrics : IngestMetrics | None
        Snapshot of the run metrics, attached by the ingestor before re-raising.
    """

    def __init__(
        self,
        message: str,
        batch_number: int,
        rows_processed_before_failure: int,
    ) -> None:
        super().__init__(message)
        self.batch_number = batch_number
        self.rows_processed_before_failure = rows_processed_before_failure
        self.metrics: Optional[IngestMetrics] = None


class IngestCancelledError(asyncio.CancelledError):
    """
    The run was cancelled through its cancel event.

    Subclasses ``asyncio.CancelledError`` so ``except Exception`` handlers do not
    treat a cancellation as a failure.
    """

    def __init__(self, metrics: Optional[IngestMetrics] = None) -> None:
        super().__init__("Ingestion cancelled")
        self.metrics = metrics


__all__ = ["BatchIngestError", "ColumnLimitError", "IngestCancelledError"]
