"""
Run configuration models for the batch ingestor.

Both models are frozen pydantic models: they are validated once when constructed
and cannot change while an ingestion run is using them. Invalid values raise
``pydantic.ValidationError`` before any connection is opened.
"""
from __future__ import annotations

import os
from typing import Callable, Optional

from pydantic import BaseModel, Field, model_validator

from batch_ingestor.domain.metrics import IngestMetrics


class RetryPolicy(BaseModel):
    """
    Retry behaviour for transient write failures.
    """

    max_retries: int = Field(3, ge=0, description="Retries after the first attempt.")
    initial_delay_ms: int = Field(100, ge=0, description="Delay before the first retry.")
    max_delay_ms: int = Field(5000, ge=0, description="Upper bound for any single delay.")
    exponential_backoff: bool = Field(True, description="Double the delay per attempt.")
    jitter: bool = Field(True, description="Add up to 25% random delay.")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError("max_delay_ms must be greater than or equal to initial_delay_ms")
        return self


class IngestOptions(BaseModel):
    """
    Configuration for one ingestion run.
    """

    batch_size: int = Field(1000, gt=0, description="Records per batch.")
    parallelism: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        gt=0,
        description="Number of concurrent consumers.",
    )
    max_in_flight_batches: int = Field(
        10, gt=0, description="Depth of the bounded queue between producer and consumers."
    )
    command_timeout_seconds: float = Field(
        300, ge=0, description="Per-statement timeout; 0 disables it."
    )
    use_transactions: bool = True
    transaction_per_batch: bool = True
    retry_policy: Optional[RetryPolicy] = None

    enable_cpu_throttling: bool = False
    max_cpu_percent: float = Field(80.0, ge=0, le=100)
    throttle_delay_ms: int = Field(100, ge=0)
    enable_performance_metrics: bool = False
    performance_sample_interval_ms: int = Field(1000, gt=0)

    progress_interval: int = Field(10, gt=0, description="Batches between progress callbacks.")
    on_progress: Optional[Callable[[IngestMetrics], None]] = None
    on_batch_completed: Optional[Callable[[int, float], None]] = None

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }

    @property
    def sampling_enabled(self) -> bool:
        """Whether a performance sampler is needed for this run."""
        return self.enable_performance_metrics or (
            self.enable_cpu_throttling and self.max_cpu_percent > 0
        )


__all__ = ["IngestOptions", "RetryPolicy"]
