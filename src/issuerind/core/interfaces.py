from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from typing import List, Protocol, runtime_checkable

from issuerind.core.models import EventLog


# ---------------------------------------------------------------------------
# IChainClient
# ---------------------------------------------------------------------------

@runtime_checkable
class IChainClient(Protocol):
    """
    Abstract provider for reading the issuer contract from the chain.

    Domain expectations:
    - It returns EventLog objects already mapped into internal domain models.
    - It hides the underlying RPC technology.
    """

    async def latest_block(self) -> int:
        """Return the current chain head height."""
        ...

    async def get_logs(
        self,
        *,
        address: str,
        topic0s: Sequence[str],
        from_block: int,
        to_block: int,
    ) -> List[EventLog]:
        """
        Return all logs for (address, topic0s) over the inclusive block range.

        Implementations:
        - RPC-based (`RPC` class)
        - In-memory or synthetic provider for testing
        """
        ...

    async def block_timestamp(self, block_number: int) -> int:
        """Return the block timestamp in seconds."""
        ...


# ---------------------------------------------------------------------------
# ILogSubscriber
# ---------------------------------------------------------------------------

@runtime_checkable
class ILogSubscriber(Protocol):
    """
    Push transport for new logs.

    Domain expectations:
    - `logs` yields logs as the node delivers them, until the connection drops.
    - Connection or subscription failures surface as exceptions from the iterator.
    - `on_subscribed(subscription_id)` is called once the node accepts the subscription.
    """

    def logs(
        self,
        *,
        address: str,
        topic0s: Sequence[str],
        on_subscribed: Callable[[str], None] | None = None,
    ) -> AsyncIterator[EventLog]:
        ...


# ---------------------------------------------------------------------------
# IKeyValueStore
# ---------------------------------------------------------------------------

@runtime_checkable
class IStoreBatch(Protocol):
    """
    A queued set of writes applied atomically by `execute`.

    Concurrent readers never observe a partially applied batch.
    """

    def hset(self, key: str, mapping: dict[str, str]) -> IStoreBatch: ...

    def lpush(self, key: str, value: str) -> IStoreBatch: ...

    def lrem(self, key: str, value: str) -> IStoreBatch: ...

    def delete(self, *keys: str) -> IStoreBatch: ...

    async def execute(self) -> None: ...


@runtime_checkable
class IKeyValueStore(Protocol):
    """
    Durable key-value store holding the projection and the progress cursor.

    Implementations:
    - RedisStore (redis.asyncio)
    - InMemoryStore (tests, dry runs)

    Failures are raised as StoreError.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def lrange(self, key: str, start: int, stop: int) -> list[str]: ...

    async def llen(self, key: str) -> int: ...

    async def keys(self, pattern: str) -> list[str]: ...

    def batch(self) -> IStoreBatch: ...

    async def ping(self) -> bool: ...

    async def aclose(self) -> None: ...
