"""Pull-based live ingestion: poll `[cursor + 1, head]` on a fixed interval."""

from __future__ import annotations

import logging

from issuerind.adapters.event_source import EventSource
from issuerind.core.config import PollingConfig
from issuerind.core.models import ProcessStats
from issuerind.core.use_cases.projection import StateProjector
from issuerind.orchestration.utils import StopToken, iter_chunks, project_logs
from issuerind.storage.progress import ProgressTracker

logger = logging.getLogger(__name__)


class PollingService:
    """Timer-driven polling loop sharing the backfill cursor.

    One cycle: read cursor → read head → fetch `[cursor + 1, head]` in windows
    of at most `batch_size` blocks → project each window in order → advance
    the cursor to the window end. A failed window leaves the cursor at the last
    completed one and the next cycle starts after `retry_interval_s`.

    An unset cursor reads as `start_block - 1`, so a first poll on an empty
    store replays from the configured start block.
    """

    def __init__(
        self,
        *,
        source: EventSource,
        projector: StateProjector,
        progress: ProgressTracker,
        config: PollingConfig,
        stop: StopToken | None = None,
    ) -> None:
        self.source = source
        self.projector = projector
        self.progress = progress
        self.config = config
        self.stop = stop or StopToken()
        self.stats = ProcessStats()

    async def poll_once(self) -> int:
        """Run one cycle. Returns the number of events projected."""
        head = await self.source.current_height()
        last = await self.progress.get()
        if head <= last:
            return 0

        events = 0
        for from_block, to_block in iter_chunks(last + 1, head, self.config.batch_size):
            if self.stop.is_set():
                break
            logs = await self.source.get_logs(from_block, to_block)
            self.stats.total_logs += len(logs)
            projected = await project_logs(self.source, self.projector, logs, self.stats)
            await self.progress.set(to_block)
            self.stats.batches_ok += 1
            self.stats.last_block = to_block
            if projected:
                logger.info("Processed %d events from blocks %d to %d", projected, from_block, to_block)
            events += projected
        return events

    async def run(self) -> ProcessStats:
        logger.info("Starting event polling every %.0fs", self.config.interval_s)
        while not self.stop.is_set():
            try:
                await self.poll_once()
                delay = self.config.interval_s
            except Exception as e:
                self.stats.batches_failed += 1
                logger.error("Polling error, retrying in %.0fs: %s", self.config.retry_interval_s, e)
                delay = self.config.retry_interval_s
            await self.stop.wait(delay)
        logger.info("Stopped event polling service")
        return self.stats
