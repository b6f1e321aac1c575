"""Bounded historical backfill driven as an explicit state machine.

    IDLE → COMPUTING_RANGE → FETCHING_BATCH → PROJECTING_BATCH → ADVANCING_CURSOR
                                   ↑                                    │
                                   └──────── more blocks remaining ─────┘

The cursor is written only in ADVANCING_CURSOR, after every event of the
batch has been projected. A failing batch is retried in place under the
"strict" policy (capped exponential backoff, every attempt logged); under
"best-effort" it is logged and skipped, and the cursor moves past it with the
next successful batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from issuerind.adapters.event_source import EventSource
from issuerind.core.config import BackfillConfig
from issuerind.core.models import BackfillStatus, EventLog, ProcessStats
from issuerind.core.use_cases.projection import StateProjector
from issuerind.orchestration.utils import StopToken, backoff_delay, project_logs
from issuerind.storage.progress import ProgressTracker

logger = logging.getLogger(__name__)


class BackfillState(str, Enum):
    IDLE = "idle"
    COMPUTING_RANGE = "computing_range"
    FETCHING_BATCH = "fetching_batch"
    PROJECTING_BATCH = "projecting_batch"
    ADVANCING_CURSOR = "advancing_cursor"


@dataclass(slots=True)
class _Batch:
    start: int
    end: int
    attempts: int = 0
    logs: list[EventLog] | None = None


BatchCallback = Callable[[int, int, int], None]  # (from_block, to_block, events)


async def resolve_block_range(
    source: EventSource,
    progress: ProgressTracker,
    start_block: int | None,
    end_block: int | str,
) -> tuple[int, int]:
    """Resume point and target block, handling 'latest'."""
    cursor = await progress.get()
    start = max(progress.start_block if start_block is None else start_block, cursor + 1)
    if isinstance(end_block, str):
        if end_block.lower() != "latest":
            raise ValueError(f"end_block must be an int or 'latest', got {end_block!r}")
        end = await source.current_height()
    else:
        end = int(end_block)
    return start, end


class BackfillService:
    def __init__(
        self,
        *,
        source: EventSource,
        projector: StateProjector,
        progress: ProgressTracker,
        config: BackfillConfig,
        stop: StopToken | None = None,
    ) -> None:
        self.source = source
        self.projector = projector
        self.progress = progress
        self.config = config
        self.stop = stop or StopToken()
        self.state = BackfillState.IDLE

    def _enter(self, state: BackfillState) -> None:
        logger.debug("backfill: %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(
        self,
        *,
        start_block: int | None = None,
        end_block: int | str = "latest",
        on_batch: BatchCallback | None = None,
    ) -> ProcessStats:
        """Replay [max(start, cursor + 1), end] in fixed-size batches."""
        stats = ProcessStats()
        batch_size = self.config.batch_size

        self._enter(BackfillState.COMPUTING_RANGE)
        start, end = await resolve_block_range(self.source, self.progress, start_block, end_block)
        if start > end:
            logger.info("No new blocks to process (next=%d, target=%d)", start, end)
            self._enter(BackfillState.IDLE)
            return stats
        logger.info("Backfilling events from block %d to %d", start, end)

        batch = _Batch(start, min(start + batch_size - 1, end))
        self._enter(BackfillState.FETCHING_BATCH)

        while self.state is not BackfillState.IDLE:
            if self.state is BackfillState.FETCHING_BATCH and self.stop.is_set():
                # a projected batch always reaches ADVANCING_CURSOR first
                logger.info("Backfill stopped before block %d", batch.start)
                self._enter(BackfillState.IDLE)
                break
            try:
                if self.state is BackfillState.FETCHING_BATCH:
                    batch.attempts += 1
                    batch.logs = await self.source.get_logs(batch.start, batch.end)
                    stats.total_logs += len(batch.logs)
                    self._enter(BackfillState.PROJECTING_BATCH)

                elif self.state is BackfillState.PROJECTING_BATCH:
                    events = await project_logs(self.source, self.projector, batch.logs or [], stats)
                    logger.info("Batch %d-%d completed: %d events processed", batch.start, batch.end, events)
                    if on_batch is not None:
                        on_batch(batch.start, batch.end, events)
                    self._enter(BackfillState.ADVANCING_CURSOR)

                elif self.state is BackfillState.ADVANCING_CURSOR:
                    await self.progress.set(batch.end)
                    stats.batches_ok += 1
                    stats.last_block = batch.end
                    batch = await self._next_batch(batch, end)

            except Exception as e:
                stats.batches_failed += 1
                batch = await self._on_failure(batch, end, e, stats)

        logger.info(
            "Backfill finished: %d batches ok, %d failed attempts, %d events applied",
            stats.batches_ok,
            stats.batches_failed,
            stats.applied,
        )
        return stats

    async def _next_batch(self, batch: _Batch, end: int) -> _Batch:
        nxt = batch.end + 1
        if nxt > end:
            self._enter(BackfillState.IDLE)
            return batch
        if self.config.delay_s > 0:
            await self.stop.wait(self.config.delay_s)
        self._enter(BackfillState.FETCHING_BATCH)
        return _Batch(nxt, min(nxt + self.config.batch_size - 1, end))

    async def _on_failure(self, batch: _Batch, end: int, error: Exception, stats: ProcessStats) -> _Batch:
        if self.config.error_policy == "best-effort":
            logger.error("Error processing batch %d-%d, skipping it: %s", batch.start, batch.end, error)
            stats.failed_ranges.append((batch.start, batch.end))
            return await self._next_batch(batch, end)

        delay = backoff_delay(batch.attempts, base=self.config.retry_delay_s, cap=self.config.max_backoff_s)
        logger.error(
            "Error processing batch %d-%d (attempt %d), retrying in %.1fs: %s",
            batch.start,
            batch.end,
            batch.attempts,
            delay,
            error,
        )
        stats.retries += 1
        await self.stop.wait(delay)
        self._enter(BackfillState.FETCHING_BATCH)
        return _Batch(batch.start, batch.end, attempts=batch.attempts)

    async def status(self) -> BackfillStatus:
        return BackfillStatus(
            last_processed_block=await self.progress.get(),
            current_block=await self.source.current_height(),
        )
