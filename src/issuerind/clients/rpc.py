"""Lightweight JSON-RPC client for Ethereum-compatible nodes.

This module provides:
- `RPC`: an async client with sane timeouts/connection limits
- Helper utilities to format block numbers, topics and raw logs

It returns `EventLog` records ready for downstream decoding.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from issuerind.core.errors import RpcError
from issuerind.core.models import EventLog


def to_hex_block(x: int) -> str:
    """Return a 0x-prefixed hex block number."""
    return hex(x)


def topics_param(topic0s: Sequence[str]) -> list[list[str]]:
    """Format topic0 signatures as an OR filter in position 0."""
    return [[t.lower() for t in topic0s]]


def _as_int(v: Any) -> int | None:
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v:
        return int(v, 16) if v.startswith("0x") else int(v)
    return None


def parse_raw_log(rl: dict[str, Any]) -> EventLog:
    """Normalize one JSON-RPC log object (eth_getLogs result or eth_subscription payload)."""
    topics = tuple((t if isinstance(t, str) else t.decode()).lower() for t in rl.get("topics", []))
    return EventLog(
        address=rl["address"].lower(),
        topics=topics,
        data_hex=str(rl.get("data") or "0x"),
        block_number=_as_int(rl["blockNumber"]) or 0,
        tx_hash=(rl.get("transactionHash") or rl.get("transaction_hash") or "").lower(),
        log_index=_as_int(rl.get("logIndex")) or 0,
        block_timestamp=_as_int(rl.get("blockTimestamp")),
        removed=bool(rl.get("removed", False)),
    )


class RPC:
    """Minimal async RPC client.

    Parameters
    ----------
    url : str
        RPC endpoint URL.
    timeout_s : int
        Per-operation timeout in seconds (connect/read/write).
    max_connections : int
        Maximum concurrent connections to keep in the pool.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_s: int = 20,
        max_connections: int = 16,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._next_id = 0
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=timeout_s,
                read=timeout_s,
                write=timeout_s,
                pool=max(30, timeout_s * 3),
            ),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            http2=transport is None,
            transport=transport,
        )

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._next_id += 1
        payload = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        try:
            r = await self.client.post(self.url, json=payload)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise RpcError(f"RPC transport error on {method}: {e}") from e
        except ValueError as e:
            raise RpcError(f"RPC returned malformed JSON for {method}: {e}") from e
        if not isinstance(data, dict):
            raise RpcError(f"RPC returned an unexpected payload for {method}: {data!r}")
        if "error" in data:
            e = data["error"]
            if isinstance(e, dict):
                raise RpcError(f"RPC error: {e.get('code')} {e.get('message')}", code=e.get("code"))
            raise RpcError(f"RPC error: {e}")
        return data.get("result")

    async def latest_block(self) -> int:
        """Return the latest block number as an int."""
        return int(await self._call("eth_blockNumber", []), 16)

    async def block_timestamp(self, block_number: int) -> int:
        """Return the block timestamp in seconds."""
        block = await self._call("eth_getBlockByNumber", [to_hex_block(block_number), False])
        if not block:
            raise RpcError(f"block {block_number} not found")
        return int(block["timestamp"], 16)

    async def get_logs(
        self,
        *,
        address: str,
        topic0s: Sequence[str],
        from_block: int,
        to_block: int,
    ) -> list[EventLog]:
        """Fetch logs for an address and a set of topic0 signatures within a block range."""
        params = [
            {
                "address": address.lower(),
                "fromBlock": to_hex_block(from_block),
                "toBlock": to_hex_block(to_block),
                "topics": topics_param(topic0s),
            }
        ]
        result = await self._call("eth_getLogs", params)
        return [parse_raw_log(rl) for rl in result or []]

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
