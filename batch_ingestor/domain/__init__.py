"""
Domain package for the batch ingestor.

Exports the run configuration models and the metrics types shared by the
pipeline, the ingestor façade and the reporters. Keep this package focused on
data definitions and validation concerns.
"""

from batch_ingestor.domain.metrics import IngestMetrics, MetricsRecorder, PerformanceSnapshot
from batch_ingestor.domain.models import IngestOptions, RetryPolicy

__all__ = [
    "IngestMetrics",
    "IngestOptions",
    "MetricsRecorder",
    "PerformanceSnapshot",
    "RetryPolicy",
]
