"""
Utilities package for the batch ingestor.

Exports shared helpers for logging, resource sampling and profiling.
Keep this package lightweight and free of ingestion logic.
"""

from batch_ingestor.utils.logging import configure_logging, get_logger
from batch_ingestor.utils.profiler import PerformanceSampler, ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "PerformanceSampler",
    "ProfileStats",
    "profile_block",
]
