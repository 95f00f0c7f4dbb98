"""
Infrastructure package for the batch ingestor.

Centralizes database connectivity concerns (dedicated and pooled connection
factories). Keep this layer focused on I/O and resource management, decoupled
from pipeline logic.
"""

from batch_ingestor.infrastructure.db_factory import (
    AsyncpgConnectionFactory,
    ConnectionFactory,
    PooledConnectionFactory,
    PsycopgConnectionFactory,
    TargetConnection,
)

__all__ = [
    "AsyncpgConnectionFactory",
    "ConnectionFactory",
    "PooledConnectionFactory",
    "PsycopgConnectionFactory",
    "TargetConnection",
]
