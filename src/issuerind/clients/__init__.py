"""Chain access: JSON-RPC over HTTP and log subscriptions over WebSocket."""

from issuerind.clients.rpc import RPC
from issuerind.clients.ws import WebSocketSubscriber

__all__ = ["RPC", "WebSocketSubscriber"]
