from issuerind.adapters.event_source import EventSource

__all__ = ["EventSource"]
