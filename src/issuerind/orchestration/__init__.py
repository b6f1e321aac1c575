"""Ingestion strategies sharing one projector and one block cursor.

This package provides:
- BackfillService: batched historical replay with a strict or best-effort policy
- PollingService: interval polling of new blocks
- SubscriptionService: push-based live ingestion with reconnects
- IndexerRunner: picks subscription or polling and falls back between them
"""

from issuerind.orchestration.backfill import BackfillService, BackfillState
from issuerind.orchestration.polling import PollingService
from issuerind.orchestration.runner import IndexerRunner
from issuerind.orchestration.subscription import SubscriptionService
from issuerind.orchestration.utils import StopToken, iter_chunks

__all__ = [
    "BackfillService",
    "BackfillState",
    "PollingService",
    "IndexerRunner",
    "SubscriptionService",
    "StopToken",
    "iter_chunks",
]
