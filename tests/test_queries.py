from unittest.mock import AsyncMock

import pytest
from conftest import ADMIN

from issuerind.core.models import (
    ApplicationSubmitted,
    DecodedEvent,
    EventMeta,
    IssuerApproved,
    IssuerStatus,
)
from issuerind.core.use_cases.projection import StateProjector
from issuerind.core.use_cases.queries import QueryService
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker


def addr(i: int) -> str:
    return f"0x{i:040x}"


async def seed(projector: StateProjector, n: int, approve_every: int = 0) -> None:
    for i in range(1, n + 1):
        ev = ApplicationSubmitted(addr(i), f"issuer {i}", (), "0", "0x", "0")
        await projector.apply(DecodedEvent(ev, EventMeta(f"0x{i:064x}", i, 0, i * 1000)))
        if approve_every and i % approve_every == 0:
            ok = IssuerApproved(ADMIN, addr(i), "0x" + "00" * 32, False)
            await projector.apply(DecodedEvent(ok, EventMeta(f"0x{i:064x}", 500 + i, 1, (500 + i) * 1000)))


@pytest.mark.asyncio
async def test_get_issuer(projector: StateProjector, store: InMemoryStore) -> None:
    await seed(projector, 1)
    queries = QueryService(store)

    record = await queries.get_issuer(addr(1).upper().replace("0X", "0x"))

    assert record is not None
    assert record.name == "issuer 1"
    assert await queries.get_issuer(addr(99)) is None


@pytest.mark.asyncio
async def test_get_issuers_by_status_pages_newest_first(projector: StateProjector, store: InMemoryStore) -> None:
    await seed(projector, 5)
    queries = QueryService(store)

    first = await queries.get_issuers_by_status(IssuerStatus.PENDING, limit=2, offset=0)
    rest = await queries.get_issuers_by_status(IssuerStatus.PENDING, limit=10, offset=2)

    assert first.total == rest.total == 5
    assert [r.address for r in first.issuers] == [addr(5), addr(4)]
    assert [r.address for r in rest.issuers] == [addr(3), addr(2), addr(1)]
    assert (await queries.get_issuers_by_status(IssuerStatus.REJECTED)).issuers == []


@pytest.mark.asyncio
async def test_get_all_issuers_sorted_by_last_update(projector: StateProjector, store: InMemoryStore) -> None:
    await seed(projector, 6, approve_every=3)
    queries = QueryService(store)

    page = await queries.get_all_issuers(limit=4)

    assert page.total == 6
    # approvals at blocks 503 and 506 are the most recent updates
    assert [r.address for r in page.issuers] == [addr(6), addr(3), addr(5), addr(4)]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit,offset", [(0, 0), (1001, 0), (10, -1)])
async def test_page_bounds_are_validated(store: InMemoryStore, limit: int, offset: int) -> None:
    queries = QueryService(store)
    with pytest.raises(ValueError):
        await queries.get_all_issuers(limit=limit, offset=offset)
    with pytest.raises(ValueError):
        await queries.get_issuers_by_status(IssuerStatus.PENDING, limit=limit, offset=offset)


@pytest.mark.asyncio
async def test_counts(projector: StateProjector, store: InMemoryStore) -> None:
    await seed(projector, 6, approve_every=2)
    counts = await QueryService(store).counts()
    assert (counts.pending, counts.approved, counts.rejected, counts.total) == (3, 3, 0, 6)


@pytest.mark.asyncio
async def test_health_healthy(projector: StateProjector, store: InMemoryStore, progress: ProgressTracker) -> None:
    await seed(projector, 2)
    await progress.set(77)
    chain = AsyncMock()
    chain.latest_block = AsyncMock(return_value=100)

    report = await QueryService(store, progress=progress, chain=chain).health()

    assert report.status == "healthy"
    assert report.current_block == 100
    assert report.last_processed_block == 77
    assert report.counts is not None and report.counts.pending == 2


@pytest.mark.asyncio
async def test_health_degraded_when_chain_is_down(store: InMemoryStore) -> None:
    chain = AsyncMock()
    chain.latest_block = AsyncMock(side_effect=ConnectionError("rpc down"))

    report = await QueryService(store, chain=chain).health()

    assert report.status == "degraded"
    assert report.chain.healthy is False
    assert "rpc down" in (report.chain.error or "")


@pytest.mark.asyncio
async def test_health_unhealthy_when_store_is_down() -> None:
    store = AsyncMock()
    store.ping = AsyncMock(return_value=False)
    chain = AsyncMock()
    chain.latest_block = AsyncMock(return_value=1)

    report = await QueryService(store, chain=chain).health()

    assert report.status == "unhealthy"
    assert report.counts is None
    store.llen.assert_not_awaited()
