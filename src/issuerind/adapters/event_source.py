"""Event source: one decode path shared by the pull and push transports.

`EventSource` binds the issuer contract address and event registry to a chain
client (and, optionally, a log subscriber) and turns raw logs into
`DecodedEvent`s with block-derived timestamps.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable

from issuerind.core.interfaces import IChainClient, ILogSubscriber
from issuerind.core.models import DecodedEvent, EventLog, EventMeta
from issuerind.decoding.decoder import decode_event
from issuerind.decoding.events import to_domain_event
from issuerind.decoding.specs import EventRegistry, get_event_registry_topic0s

logger = logging.getLogger(__name__)

TIMESTAMP_CACHE_SIZE = 4096


class EventSource:
    def __init__(
        self,
        *,
        chain: IChainClient,
        address: str,
        registry: EventRegistry,
        subscriber: ILogSubscriber | None = None,
    ) -> None:
        self.chain = chain
        self.address = address.lower()
        self.registry = registry
        self.subscriber = subscriber
        self.topic0s = get_event_registry_topic0s(registry)
        self._ts_cache: OrderedDict[int, int] = OrderedDict()

    async def current_height(self) -> int:
        return await self.chain.latest_block()

    async def block_timestamp(self, block_number: int) -> int:
        """Block timestamp in milliseconds (LRU-cached)."""
        ts = self._ts_cache.get(block_number)
        if ts is not None:
            self._ts_cache.move_to_end(block_number)
            return ts
        ts = await self.chain.block_timestamp(block_number) * 1000
        self._remember(block_number, ts)
        return ts

    def _remember(self, block_number: int, ts_ms: int) -> None:
        self._ts_cache[block_number] = ts_ms
        self._ts_cache.move_to_end(block_number)
        while len(self._ts_cache) > TIMESTAMP_CACHE_SIZE:
            self._ts_cache.popitem(last=False)

    async def get_logs(self, from_block: int, to_block: int) -> list[EventLog]:
        """Contract logs over the inclusive range in (block, log index) order."""
        logs = await self.chain.get_logs(
            address=self.address,
            topic0s=self.topic0s,
            from_block=from_block,
            to_block=to_block,
        )
        return sorted(logs, key=lambda lg: (lg.block_number, lg.log_index))

    async def decode(self, log: EventLog) -> DecodedEvent | None:
        """Decode one raw log; None means "not one of ours" and is never an error."""
        if log.address and log.address != self.address:
            return None
        parsed = decode_event(log=log, registry=self.registry)
        if parsed is None:
            logger.debug("Unrecognized log tx=%s index=%d", log.tx_hash, log.log_index)
            return None
        event = to_domain_event(parsed)
        if event is None:
            return None
        if log.block_timestamp is not None:
            self._remember(log.block_number, log.block_timestamp * 1000)
        meta = EventMeta(
            tx_hash=log.tx_hash,
            block_number=log.block_number,
            log_index=log.log_index,
            timestamp=await self.block_timestamp(log.block_number),
        )
        return DecodedEvent(event=event, meta=meta)

    def subscribe(self, on_subscribed: Callable[[str], None] | None = None) -> AsyncIterator[EventLog]:
        """Raw logs pushed by the subscriber for this contract."""
        if self.subscriber is None:
            raise RuntimeError("no log subscriber configured")
        return self.subscriber.logs(address=self.address, topic0s=self.topic0s, on_subscribed=on_subscribed)
