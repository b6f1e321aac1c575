from unittest.mock import AsyncMock

import pytest
from conftest import ISSUER_A, FakeChain, LogFactory

from issuerind.adapters.event_source import EventSource
from issuerind.core.config import BackfillConfig, PollingConfig
from issuerind.core.models import IssuerStatus
from issuerind.core.use_cases.projection import StateProjector
from issuerind.core.use_cases.queries import QueryService
from issuerind.orchestration.backfill import BackfillService
from issuerind.orchestration.polling import PollingService
from issuerind.orchestration.utils import StopToken
from issuerind.storage.progress import ProgressTracker


def make_service(source, projector, progress, stop=None) -> PollingService:
    config = PollingConfig(interval_s=0, retry_interval_s=0)
    return PollingService(source=source, projector=projector, progress=progress, config=config, stop=stop)


@pytest.mark.asyncio
async def test_first_poll_without_cursor_replays_from_start_block(
    chain: FakeChain,
    logs: LogFactory,
    source: EventSource,
    projector: StateProjector,
    progress: ProgressTracker,
    store,
) -> None:
    chain.logs = [logs.submitted(ISSUER_A, block=50)]
    chain.head = 2_500

    assert await make_service(source, projector, progress).poll_once() == 1

    assert chain.calls == [(0, 998), (999, 1997), (1998, 2500)]
    assert await progress.get() == 2_500
    assert await QueryService(store).get_issuer(ISSUER_A) is not None


@pytest.mark.asyncio
async def test_polling_before_backfill_does_not_hide_history(
    chain: FakeChain,
    logs: LogFactory,
    source: EventSource,
    projector: StateProjector,
    progress: ProgressTracker,
    store,
) -> None:
    chain.logs = [logs.submitted(ISSUER_A, block=50)]
    chain.head = 500

    await make_service(source, projector, progress).poll_once()
    await BackfillService(
        source=source, projector=projector, progress=progress, config=BackfillConfig(delay_s=0)
    ).run(start_block=0)

    record = await QueryService(store).get_issuer(ISSUER_A)
    assert record is not None and record.status is IssuerStatus.PENDING


@pytest.mark.asyncio
async def test_failed_window_keeps_completed_windows(
    chain: FakeChain, source: EventSource, projector: StateProjector, progress: ProgressTracker
) -> None:
    chain.head = 2_500
    chain.fail = lambda a, b: ConnectionError("rpc down") if a == 999 else None

    with pytest.raises(ConnectionError):
        await make_service(source, projector, progress).poll_once()

    assert await progress.get() == 998


@pytest.mark.asyncio
async def test_poll_projects_new_blocks_and_advances_cursor(
    chain: FakeChain,
    logs: LogFactory,
    source: EventSource,
    projector: StateProjector,
    progress: ProgressTracker,
    store,
) -> None:
    chain.logs = [logs.submitted(ISSUER_A, block=15), logs.approved(ISSUER_A, block=18)]
    chain.head = 20
    await progress.set(10)
    service = make_service(source, projector, progress)

    assert await service.poll_once() == 2

    assert chain.calls == [(11, 20)]
    assert await progress.get() == 20
    record = await QueryService(store).get_issuer(ISSUER_A)
    assert record is not None and record.status is IssuerStatus.APPROVED
    assert service.stats.applied == 2


@pytest.mark.asyncio
async def test_poll_without_new_blocks_does_nothing(
    chain: FakeChain, source: EventSource, projector: StateProjector, progress: ProgressTracker
) -> None:
    chain.head = 20
    await progress.set(20)

    assert await make_service(source, projector, progress).poll_once() == 0
    assert chain.calls == []


@pytest.mark.asyncio
async def test_failed_poll_leaves_cursor(
    chain: FakeChain, source: EventSource, projector: StateProjector, progress: ProgressTracker
) -> None:
    chain.head = 20
    await progress.set(10)
    chain.fail = lambda a, b: ConnectionError("rpc down")

    with pytest.raises(ConnectionError):
        await make_service(source, projector, progress).poll_once()

    assert await progress.get() == 10


@pytest.mark.asyncio
async def test_run_survives_errors_until_stopped(
    chain: FakeChain, source: EventSource, projector: StateProjector, progress: ProgressTracker
) -> None:
    stop = StopToken()
    service = make_service(source, projector, progress, stop=stop)
    outcomes = [ConnectionError("rpc down"), 3, 0]

    async def poll_once():
        result = outcomes.pop(0)
        if not outcomes:
            stop.set()
        if isinstance(result, Exception):
            raise result
        return result

    service.poll_once = AsyncMock(side_effect=poll_once)

    stats = await service.run()

    assert service.poll_once.await_count == 3
    assert stats.batches_failed == 1
