"""
Configuration settings for the batch ingestor.

Uses Pydantic Settings to load environment variables for the target database
connection, logging, and ingestion defaults. Library callers can build
``IngestOptions`` directly; the CLI and applications that prefer environment
configuration use ``get_settings().ingest_options()``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from batch_ingestor.domain.models import IngestOptions, RetryPolicy


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("ingest", alias="DB_NAME")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Ingestion defaults
    ingest_batch_size: int = Field(1000, alias="INGEST_BATCH_SIZE")
    ingest_parallelism: int = Field(4, alias="INGEST_PARALLELISM")
    ingest_max_in_flight_batches: int = Field(10, alias="INGEST_MAX_IN_FLIGHT_BATCHES")
    ingest_command_timeout_seconds: float = Field(300, alias="INGEST_COMMAND_TIMEOUT_SECONDS")
    ingest_use_transactions: bool = Field(True, alias="INGEST_USE_TRANSACTIONS")
    ingest_transaction_per_batch: bool = Field(True, alias="INGEST_TRANSACTION_PER_BATCH")
    ingest_enable_cpu_throttling: bool = Field(False, alias="INGEST_ENABLE_CPU_THROTTLING")
    ingest_max_cpu_percent: float = Field(80.0, alias="INGEST_MAX_CPU_PERCENT")
    ingest_throttle_delay_ms: int = Field(100, alias="INGEST_THROTTLE_DELAY_MS")
    ingest_enable_performance_metrics: bool = Field(
        False, alias="INGEST_ENABLE_PERFORMANCE_METRICS"
    )
    ingest_performance_sample_interval_ms: int = Field(
        1000, alias="INGEST_PERFORMANCE_SAMPLE_INTERVAL_MS"
    )

    # Retry policy; 0 retries disables retrying
    retry_max_retries: int = Field(3, alias="RETRY_MAX_RETRIES")
    retry_initial_delay_ms: int = Field(100, alias="RETRY_INITIAL_DELAY_MS")
    retry_max_delay_ms: int = Field(5000, alias="RETRY_MAX_DELAY_MS")
    retry_exponential_backoff: bool = Field(True, alias="RETRY_EXPONENTIAL_BACKOFF")
    retry_jitter: bool = Field(True, alias="RETRY_JITTER")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def retry_policy(self) -> Optional[RetryPolicy]:
        if self.retry_max_retries == 0:
            return None
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            exponential_backoff=self.retry_exponential_backoff,
            jitter=self.retry_jitter,
        )

    def ingest_options(self, **overrides) -> IngestOptions:
        """
        Build validated ``IngestOptions`` from settings; keyword overrides win.
        """
        values = {
            "batch_size": self.ingest_batch_size,
            "parallelism": self.ingest_parallelism,
            "max_in_flight_batches": self.ingest_max_in_flight_batches,
            "command_timeout_seconds": self.ingest_command_timeout_seconds,
            "use_transactions": self.ingest_use_transactions,
            "transaction_per_batch": self.ingest_transaction_per_batch,
            "retry_policy": self.retry_policy(),
            "enable_cpu_throttling": self.ingest_enable_cpu_throttling,
            "max_cpu_percent": self.ingest_max_cpu_percent,
            "throttle_delay_ms": self.ingest_throttle_delay_ms,
            "enable_performance_metrics": self.ingest_enable_performance_metrics,
            "performance_sample_interval_ms": self.ingest_performance_sample_interval_ms,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return IngestOptions(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


__all__ = ["Settings", "build_dsn", "get_settings"]
