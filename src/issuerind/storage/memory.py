"""In-process key-value store with Redis semantics for the subset we use.

Backs the test-suite and `--store memory` dry runs. Batches are applied under
an asyncio.Lock with no awaits between operations, so readers never see a
half-applied batch.
"""

from __future__ import annotations

import asyncio
import fnmatch
from collections.abc import Callable

Op = Callable[["InMemoryStore"], None]


def _redis_slice(items: list[str], start: int, stop: int) -> list[str]:
    """LRANGE semantics: inclusive stop, negative indices count from the end."""
    n = len(items)
    if start < 0:
        start = max(0, n + start)
    if stop < 0:
        stop = n + stop
    if start >= n or start > stop:
        return []
    return items[start : stop + 1]


class InMemoryBatch:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._ops: list[Op] = []

    def hset(self, key: str, mapping: dict[str, str]) -> InMemoryBatch:
        self._ops.append(lambda s: s._hashes.setdefault(key, {}).update(mapping))
        return self

    def lpush(self, key: str, value: str) -> InMemoryBatch:
        self._ops.append(lambda s: s._lists.setdefault(key, []).insert(0, value))
        return self

    def lrem(self, key: str, value: str) -> InMemoryBatch:
        def _op(s: InMemoryStore) -> None:
            if key in s._lists:
                kept = [v for v in s._lists[key] if v != value]
                if kept:
                    s._lists[key] = kept
                else:
                    del s._lists[key]  # Redis drops empty lists

        self._ops.append(_op)
        return self

    def delete(self, *keys: str) -> InMemoryBatch:
        self._ops.append(lambda s: s._delete_now(keys))
        return self

    async def execute(self) -> None:
        async with self._store._lock:
            for op in self._ops:
                op(self._store)
        self._ops = []


class InMemoryStore:
    def __init__(self) -> None:
        self._strings: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    def _delete_now(self, keys: tuple[str, ...]) -> int:
        removed = 0
        for k in keys:
            for space in (self._strings, self._hashes, self._lists):
                if k in space:
                    del space[k]
                    removed += 1
        return removed

    async def get(self, key: str) -> str | None:
        return self._strings.get(key)

    async def set(self, key: str, value: str) -> None:
        self._strings[key] = value

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            return self._delete_now(keys)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return _redis_slice(self._lists.get(key, []), start, stop)

    async def llen(self, key: str) -> int:
        return len(self._lists.get(key, []))

    async def keys(self, pattern: str) -> list[str]:
        names = set(self._strings) | set(self._hashes) | set(self._lists)
        return sorted(k for k in names if fnmatch.fnmatchcase(k, pattern))

    def batch(self) -> InMemoryBatch:
        return InMemoryBatch(self)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
