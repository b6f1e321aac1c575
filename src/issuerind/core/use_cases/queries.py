"""Read-only access to the projected issuer state.

`get_all_issuers` hydrates every issuer across the three status indexes and
sorts in memory: O(total issuers) per call, fine for the registry sizes this
contract sees.
"""

from __future__ import annotations

import asyncio
import logging
import time

from issuerind.core.interfaces import IChainClient, IKeyValueStore
from issuerind.core.models import (
    ALL_STATUSES,
    HealthReport,
    IssuerPage,
    IssuerRecord,
    IssuerStatus,
    ServiceHealth,
    StatusCounts,
)
from issuerind.storage.keys import issuer_key, status_index_key
from issuerind.storage.progress import ProgressTracker

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 1000


def _check_page(limit: int, offset: int) -> None:
    if not 1 <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be within 1..{MAX_LIMIT}")
    if offset < 0:
        raise ValueError("offset must be >= 0")


class QueryService:
    def __init__(
        self,
        store: IKeyValueStore,
        *,
        progress: ProgressTracker | None = None,
        chain: IChainClient | None = None,
    ) -> None:
        self._store = store
        self._progress = progress
        self._chain = chain

    async def get_issuer(self, address: str) -> IssuerRecord | None:
        data = await self._store.hgetall(issuer_key(address))
        if not data:
            return None
        return IssuerRecord.from_hash(data)

    async def _hydrate(self, addresses: list[str]) -> list[IssuerRecord]:
        records = await asyncio.gather(*(self.get_issuer(a) for a in addresses))
        return [r for r in records if r is not None]

    async def get_issuers_by_status(
        self,
        status: IssuerStatus,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> IssuerPage:
        _check_page(limit, offset)
        key = status_index_key(status)
        total = await self._store.llen(key)
        addresses = await self._store.lrange(key, offset, offset + limit - 1)
        return IssuerPage(issuers=await self._hydrate(addresses), total=total, limit=limit, offset=offset)

    async def list_all(self) -> list[IssuerRecord]:
        """Every indexed issuer, most recently updated first (ties by address)."""
        everyone: list[IssuerRecord] = []
        for status in ALL_STATUSES:
            addresses = await self._store.lrange(status_index_key(status), 0, -1)
            everyone.extend(await self._hydrate(addresses))
        everyone.sort(key=lambda r: (-r.updated_at, r.address))
        return everyone

    async def get_all_issuers(self, limit: int = DEFAULT_LIMIT, offset: int = 0) -> IssuerPage:
        _check_page(limit, offset)
        everyone = await self.list_all()
        return IssuerPage(issuers=everyone[offset : offset + limit], total=len(everyone), limit=limit, offset=offset)

    async def counts(self) -> StatusCounts:
        pending, approved, rejected = await asyncio.gather(
            *(self._store.llen(status_index_key(s)) for s in ALL_STATUSES)
        )
        return StatusCounts(pending=pending, approved=approved, rejected=rejected)

    async def health(self) -> HealthReport:
        """Probe store and chain; a dead store is unhealthy, a dead chain only degraded."""
        t0 = time.perf_counter()
        try:
            store_ok = await self._store.ping()
            store_err = None if store_ok else "ping failed"
        except Exception as e:
            store_ok, store_err = False, str(e)
        store = ServiceHealth(store_ok, (time.perf_counter() - t0) * 1000, store_err)

        current_block: int | None = None
        if self._chain is None:
            chain = ServiceHealth(False, 0.0, "no chain client configured")
        else:
            t0 = time.perf_counter()
            try:
                current_block = await self._chain.latest_block()
                chain = ServiceHealth(True, (time.perf_counter() - t0) * 1000)
            except Exception as e:
                logger.warning("Chain health probe failed: %s", e)
                chain = ServiceHealth(False, (time.perf_counter() - t0) * 1000, str(e))

        report = HealthReport(
            status="healthy" if store_ok and chain.healthy else "degraded" if store_ok else "unhealthy",
            store=store,
            chain=chain,
            current_block=current_block,
        )
        if store_ok:
            report.counts = await self.counts()
            if self._progress is not None:
                report.last_processed_block = await self._progress.get()
        return report
