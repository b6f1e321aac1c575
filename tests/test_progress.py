from unittest.mock import AsyncMock

import pytest
from conftest import PROGRESS_KEY

from issuerind.core.errors import StoreError
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker


@pytest.mark.asyncio
async def test_unset_cursor_reads_as_start_minus_one(store: InMemoryStore) -> None:
    tracker = ProgressTracker(store, key=PROGRESS_KEY, start_block=5_000)
    assert await tracker.get() == 4_999
    assert await tracker.is_set() is False


@pytest.mark.asyncio
async def test_set_then_get(progress: ProgressTracker, store: InMemoryStore) -> None:
    assert await progress.set(199) == 199
    assert await progress.get() == 199
    assert await progress.is_set() is True
    assert await store.get(PROGRESS_KEY) == "199"


@pytest.mark.asyncio
async def test_cursor_never_regresses(progress: ProgressTracker) -> None:
    await progress.set(300)
    assert await progress.set(250) == 300
    assert await progress.get() == 300
    assert await progress.set(300) == 300
    assert await progress.set(301) == 301


@pytest.mark.asyncio
async def test_corrupt_cursor_is_treated_as_unset_and_overwritten(
    progress: ProgressTracker, store: InMemoryStore
) -> None:
    await store.set(PROGRESS_KEY, "not-a-number")
    assert await progress.get() == -1

    assert await progress.set(10) == 10
    assert await progress.get() == 10


@pytest.mark.asyncio
async def test_unreadable_store_falls_back_to_unset() -> None:
    store = AsyncMock()
    store.get = AsyncMock(side_effect=StoreError("connection refused"))
    tracker = ProgressTracker(store, key=PROGRESS_KEY, start_block=100)

    assert await tracker.get() == 99


@pytest.mark.asyncio
async def test_write_failures_propagate() -> None:
    store = AsyncMock()
    store.get = AsyncMock(return_value="10")
    store.set = AsyncMock(side_effect=StoreError("read only replica"))
    tracker = ProgressTracker(store, key=PROGRESS_KEY)

    with pytest.raises(StoreError):
        await tracker.set(11)


@pytest.mark.asyncio
async def test_reset(progress: ProgressTracker) -> None:
    await progress.set(42)
    await progress.reset()
    assert await progress.is_set() is False
    assert await progress.get() == -1
