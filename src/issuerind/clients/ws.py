"""WebSocket log subscription (`eth_subscribe("logs", ...)`).

`WebSocketSubscriber.logs` opens one connection, subscribes to the contract's
logs and yields `EventLog` records until the connection closes. Reconnecting
is the caller's job, so that retry policy lives with the orchestrator.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any

import websockets

from issuerind.clients.rpc import parse_raw_log, topics_param
from issuerind.core.errors import RpcError
from issuerind.core.models import EventLog

logger = logging.getLogger(__name__)


class WebSocketSubscriber:
    """Push transport over a node's WebSocket endpoint."""

    def __init__(self, url: str, *, ping_interval: float = 20, ping_timeout: float = 20) -> None:
        self.url = url
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._req_id = 0

    def _subscribe_payload(self, address: str, topic0s: Sequence[str]) -> dict[str, Any]:
        self._req_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._req_id,
            "method": "eth_subscribe",
            "params": ["logs", {"address": address.lower(), "topics": topics_param(topic0s)}],
        }

    async def logs(
        self,
        *,
        address: str,
        topic0s: Sequence[str],
        on_subscribed: Callable[[str], None] | None = None,
    ) -> AsyncIterator[EventLog]:
        async with websockets.connect(
            self.url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
        ) as ws:
            payload = self._subscribe_payload(address, topic0s)
            await ws.send(json.dumps(payload))
            sub_id: str | None = None

            async for message in ws:
                data = json.loads(message)
                if sub_id is None and data.get("id") == payload["id"]:
                    if "result" not in data:
                        raise RpcError(f"eth_subscribe failed: {data.get('error')}")
                    sub_id = data["result"]
                    logger.info("Subscribed to logs of %s (subscription %s)", address, sub_id)
                    if on_subscribed is not None:
                        on_subscribed(sub_id)
                    continue
                if data.get("method") != "eth_subscription":
                    if data.get("error"):
                        logger.warning("WebSocket error message: %s", data["error"])
                    continue
                raw = data.get("params", {}).get("result")
                if raw:
                    yield parse_raw_log(raw)
