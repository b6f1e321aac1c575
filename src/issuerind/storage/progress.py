"""Durable block cursor: the highest block whose events are fully projected."""

from __future__ import annotations

import asyncio
import logging

from issuerind.core.errors import StoreError
from issuerind.core.interfaces import IKeyValueStore

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Block cursor persisted under a single store key.

    - `get` falls back to `start_block - 1` when unset or unreadable; an
      unreadable cursor means full reprocessing, never skipped blocks.
    - `set` never moves the cursor backwards; write failures are raised.
    """

    def __init__(self, store: IKeyValueStore, *, key: str, start_block: int = 0) -> None:
        self._store = store
        self.key = key
        self.start_block = start_block
        self._lock = asyncio.Lock()

    @property
    def unset_value(self) -> int:
        return self.start_block - 1

    async def _read(self) -> int | None:
        raw = await self._store.get(self.key)
        if raw is None or raw == "":
            return None
        return int(raw)

    async def get(self) -> int:
        try:
            value = await self._read()
        except (StoreError, ValueError) as e:
            logger.error("Could not read cursor %s, treating as unset: %s", self.key, e)
            return self.unset_value
        return self.unset_value if value is None else value

    async def is_set(self) -> bool:
        return await self._read() is not None

    async def set(self, block_number: int) -> int:
        """Advance the cursor to `block_number`; returns the stored value."""
        async with self._lock:
            try:
                current = await self._read()
            except ValueError:
                current = None  # corrupt value, overwrite it
            if current is not None and block_number < current:
                logger.debug("Ignoring cursor regression %d -> %d", current, block_number)
                return current
            await self._store.set(self.key, str(block_number))
            return block_number

    async def reset(self) -> None:
        async with self._lock:
            await self._store.delete(self.key)
        logger.info("Progress cursor %s reset", self.key)
