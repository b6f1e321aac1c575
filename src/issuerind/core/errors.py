from __future__ import annotations


class IndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigurationError(IndexerError, ValueError):
    """Invalid or missing configuration. Fatal at startup."""


class RpcError(IndexerError, RuntimeError):
    """JSON-RPC call failed (transport error or error object in the response)."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class StoreError(IndexerError, RuntimeError):
    """Key-value store read or write failed."""


class SubscriptionFailed(IndexerError, RuntimeError):
    """Live subscription gave up after exhausting its reconnect attempts."""
