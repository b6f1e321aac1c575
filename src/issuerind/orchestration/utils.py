"""Loop helpers shared by the ingestion strategies.

Functions
---------
- iter_chunks: split an inclusive block range into fixed-size windows.
- backoff_delay: capped exponential retry delay.
- project_logs: decode and project a block-ordered list of raw logs.

Classes
-------
- StopToken: cooperative cancellation for long-running loops.

All block intervals are inclusive on both ends: [start, end].
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Generator

from issuerind.adapters.event_source import EventSource
from issuerind.core.models import EventLog, ProcessStats
from issuerind.core.use_cases.projection import StateProjector


def iter_chunks(a: int, b: int, step: int) -> Generator[tuple[int, int], None, None]:
    """Yield inclusive [start, end] block ranges of size at most `step`."""
    x = a
    while x <= b:
        y = min(b, x + step - 1)
        yield (x, y)
        x = y + 1


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Delay before retry number `attempt` (1-based): base * 2**(attempt-1), capped."""
    return min(cap, base * (2 ** max(0, attempt - 1)))


class StopToken:
    """Cooperative stop signal.

    Loops check `is_set()` between cycles and sleep with `wait(delay)`, which
    returns early once `set()` is called. Nothing already running is cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Sleep up to `timeout` seconds; True if stop was requested."""
        if timeout is None:
            await self._event.wait()
            return True
        if timeout <= 0:
            return self.is_set()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout)
        return self.is_set()


async def project_logs(
    source: EventSource,
    projector: StateProjector,
    logs: list[EventLog],
    stats: ProcessStats,
) -> int:
    """Decode + project `logs` in order. Returns the number of events projected.

    Unrecognized logs are counted and skipped. Any store or RPC failure
    propagates so the caller can leave the cursor where it was.
    """
    projected = 0
    for log in logs:
        decoded = await source.decode(log)
        if decoded is None:
            stats.filtered += 1
            continue
        stats.decoded += 1
        stats.record(await projector.apply(decoded))
        projected += 1
    return projected
