"""Core data models, configuration, errors and interfaces.

This package provides:
- Data models (EventLog, IssuerRecord, domain events, ProcessStats)
- Configuration classes (IndexerConfig and its sections)
- The error hierarchy raised across the indexer
"""

from issuerind.core.config import (
    BackfillConfig,
    ChainConfig,
    IndexerConfig,
    PollingConfig,
    RedisConfig,
    SubscriptionConfig,
)
from issuerind.core.errors import (
    ConfigurationError,
    IndexerError,
    RpcError,
    StoreError,
    SubscriptionFailed,
)
from issuerind.core.models import (
    DecodedEvent,
    EventLog,
    EventMeta,
    IssuerRecord,
    IssuerStatus,
    ProcessStats,
)

__all__ = [
    "BackfillConfig",
    "ChainConfig",
    "IndexerConfig",
    "PollingConfig",
    "RedisConfig",
    "SubscriptionConfig",
    "ConfigurationError",
    "IndexerError",
    "RpcError",
    "StoreError",
    "SubscriptionFailed",
    "DecodedEvent",
    "EventLog",
    "EventMeta",
    "IssuerRecord",
    "IssuerStatus",
    "ProcessStats",
]
