"""Storage components for issuer state and indexing progress.

This package provides:
- RedisStore / InMemoryStore: key-value backends with atomic batches
- ProgressTracker: the persisted, never-regressing block cursor
- Parquet export of the issuer records
"""

from issuerind.storage.export import issuers_to_arrow_table, write_issuers_parquet
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker
from issuerind.storage.redis_store import RedisStore

__all__ = [
    "InMemoryStore",
    "ProgressTracker",
    "RedisStore",
    "issuers_to_arrow_table",
    "write_issuers_parquet",
]
