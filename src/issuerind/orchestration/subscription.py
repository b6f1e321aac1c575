"""Push-based live ingestion over a log subscription.

Logs are decoded and projected one at a time in delivery order; the block
cursor is not touched (this mode is not resumable, polling or backfill pick
up from the cursor after a restart). Connection or subscribe failures are
retried with a fixed delay. The failure count resets whenever the node
accepts a subscription; after `max_attempts` consecutive failures the service
raises `SubscriptionFailed` so the runner can fall back to polling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from issuerind.adapters.event_source import EventSource
from issuerind.core.config import SubscriptionConfig
from issuerind.core.errors import SubscriptionFailed
from issuerind.core.models import EventLog, ProcessStats
from issuerind.core.use_cases.projection import StateProjector
from issuerind.orchestration.utils import StopToken

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(
        self,
        *,
        source: EventSource,
        projector: StateProjector,
        config: SubscriptionConfig,
        stop: StopToken | None = None,
    ) -> None:
        self.source = source
        self.projector = projector
        self.config = config
        self.stop = stop or StopToken()
        self.stats = ProcessStats()
        self._failures = 0
        self._inflight: asyncio.Future[None] | None = None

    async def handle_log(self, log: EventLog) -> None:
        """Decode + project one pushed log, retrying a few times on failure."""
        self.stats.total_logs += 1
        if log.removed:
            logger.warning("Ignoring removed log tx=%s (reorgs are not rolled back)", log.tx_hash)
            return
        for attempt in range(1, self.config.handler_retries + 1):
            try:
                decoded = await self.source.decode(log)
                if decoded is None:
                    self.stats.filtered += 1
                    return
                self.stats.record(await self.projector.apply(decoded))
                self.stats.decoded += 1
                self.stats.last_block = log.block_number
                return
            except Exception as e:
                logger.error(
                    "Error handling log tx=%s (attempt %d/%d): %s",
                    log.tx_hash,
                    attempt,
                    self.config.handler_retries,
                    e,
                )
                if attempt < self.config.handler_retries:
                    await asyncio.sleep(min(1.0 * attempt, self.config.reconnect_delay_s))
        self.stats.batches_failed += 1
        logger.error("Dropping log tx=%s block=%d after retries", log.tx_hash, log.block_number)

    def _on_subscribed(self, subscription_id: str) -> None:
        if self._failures:
            logger.info("Subscription %s established, failure count reset", subscription_id)
        self._failures = 0

    async def _consume(self) -> None:
        async for log in self.source.subscribe(on_subscribed=self._on_subscribed):
            # shielded so a stop request never interrupts a projection mid-way
            self._inflight = asyncio.ensure_future(self.handle_log(log))
            await asyncio.shield(self._inflight)
            if self.stop.is_set():
                return
        raise ConnectionError("subscription stream ended")

    async def run(self) -> ProcessStats:
        logger.info("Starting live subscription for %s", self.source.address)
        while not self.stop.is_set():
            consumer = asyncio.create_task(self._consume())
            stopper = asyncio.create_task(self.stop.wait())
            done, _ = await asyncio.wait({consumer, stopper}, return_when=asyncio.FIRST_COMPLETED)

            if consumer not in done:
                # Stop requested while waiting for the next delivery.
                consumer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await consumer
                if self._inflight is not None and not self._inflight.done():
                    await self._inflight
                break
            stopper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stopper

            error = consumer.exception()
            if error is None:
                break
            self._failures += 1
            if self._failures >= self.config.max_attempts:
                raise SubscriptionFailed(
                    f"subscription failed {self._failures} times in a row: {error}"
                ) from error
            logger.warning(
                "Subscription error (%d/%d), retrying in %.0fs: %s",
                self._failures,
                self.config.max_attempts,
                self.config.reconnect_delay_s,
                error,
            )
            await self.stop.wait(self.config.reconnect_delay_s)

        logger.info("Stopped listening to contract events")
        return self.stats
