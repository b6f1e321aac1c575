"""Strategy selection: live subscription first, polling as the fallback."""

from __future__ import annotations

import logging

from issuerind.adapters.event_source import EventSource
from issuerind.core.config import IndexerConfig
from issuerind.core.errors import SubscriptionFailed
from issuerind.core.models import ProcessStats
from issuerind.core.use_cases.projection import StateProjector
from issuerind.orchestration.backfill import BackfillService
from issuerind.orchestration.polling import PollingService
from issuerind.orchestration.subscription import SubscriptionService
from issuerind.orchestration.utils import StopToken
from issuerind.storage.progress import ProgressTracker

logger = logging.getLogger(__name__)


class IndexerRunner:
    """Runs the live indexer until stopped.

    - `catch_up=True` first backfills from the cursor to the current head.
    - With a subscriber configured, runs the push subscription; if it gives up
      (`SubscriptionFailed`), switches to polling for the rest of the run.
    - Without a subscriber, polls.

    Polling and backfill share one cursor and never run at the same time here.
    """

    def __init__(
        self,
        *,
        source: EventSource,
        projector: StateProjector,
        progress: ProgressTracker,
        config: IndexerConfig,
        stop: StopToken | None = None,
    ) -> None:
        self.source = source
        self.projector = projector
        self.progress = progress
        self.config = config
        self.stop = stop or StopToken()
        self.mode: str = "idle"

    def backfill_service(self) -> BackfillService:
        return BackfillService(
            source=self.source,
            projector=self.projector,
            progress=self.progress,
            config=self.config.backfill,
            stop=self.stop,
        )

    def polling_service(self) -> PollingService:
        return PollingService(
            source=self.source,
            projector=self.projector,
            progress=self.progress,
            config=self.config.polling,
            stop=self.stop,
        )

    async def run(self, *, catch_up: bool = False) -> ProcessStats:
        if catch_up:
            self.mode = "backfill"
            await self.backfill_service().run()
            if self.stop.is_set():
                return ProcessStats()

        if self.source.subscriber is not None:
            self.mode = "subscription"
            subscription = SubscriptionService(
                source=self.source,
                projector=self.projector,
                config=self.config.subscription,
                stop=self.stop,
            )
            try:
                return await subscription.run()
            except SubscriptionFailed as e:
                logger.error("Live subscription unavailable, switching to polling mode: %s", e)
        else:
            logger.info("WebSocket URL not configured, using polling mode")

        self.mode = "polling"
        return await self.polling_service().run()
