from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from issuerind.core.config import RedisConfig
from issuerind.core.errors import StoreError
from issuerind.storage.redis_store import RedisStore


@pytest.mark.asyncio
async def test_redis_errors_become_store_errors() -> None:
    client = MagicMock()
    client.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    store = RedisStore(client)

    with pytest.raises(StoreError, match="GET"):
        await store.get("backfill:last_processed_block")


@pytest.mark.asyncio
async def test_ping_reports_false_on_error() -> None:
    client = MagicMock()
    client.ping = AsyncMock(side_effect=RedisConnectionError("down"))
    assert await RedisStore(client).ping() is False


@pytest.mark.asyncio
async def test_batch_queues_commands_on_a_transaction() -> None:
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=None)
    pipe.execute = AsyncMock(return_value=[1, 0, 1])
    client = MagicMock()
    client.pipeline.return_value = pipe

    await RedisStore(client).batch().hset("issuer:0xa", {"status": "pending"}).lrem("issuers:pending", "0xa").lpush(
        "issuers:pending", "0xa"
    ).execute()

    client.pipeline.assert_called_once_with(transaction=True)
    pipe.hset.assert_called_once_with("issuer:0xa", mapping={"status": "pending"})
    pipe.lrem.assert_called_once_with("issuers:pending", 0, "0xa")
    pipe.lpush.assert_called_once_with("issuers:pending", "0xa")
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_delete_without_keys_skips_the_round_trip() -> None:
    client = MagicMock()
    client.delete = AsyncMock()
    assert await RedisStore(client).delete() == 0
    client.delete.assert_not_called()


@pytest.mark.asyncio
async def test_from_config_builds_a_decoding_client() -> None:
    store = RedisStore.from_config(RedisConfig(host="localhost", port=6390, db=1))
    try:
        kwargs = store.client.connection_pool.connection_kwargs
        assert kwargs["port"] == 6390
        assert kwargs["db"] == 1
        assert kwargs["decode_responses"] is True
        assert kwargs["host"] == "localhost"
    finally:
        await store.aclose()


@pytest.mark.asyncio
async def test_from_config_passes_password_through_url() -> None:
    store = RedisStore.from_config(RedisConfig(password="p@ss/word"))
    try:
        assert store.client.connection_pool.connection_kwargs["password"] == "p@ss/word"
    finally:
        await store.aclose()
