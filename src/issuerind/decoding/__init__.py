"""Event decoding for the issuer-registry contract.

This package provides:
- Event specification system (EventSpec, TopicFieldSpec, DataFieldSpec)
- Generic decoder that translates raw logs into ParsedEvent objects
- The issuer event registry and the ParsedEvent → domain event mapping
"""

from issuerind.decoding.specs import (
    DataFieldSpec,
    EventRegistry,
    EventSpec,
    Projection,
    TopicFieldSpec,
    add_event_spec,
)
from issuerind.decoding.decoder import ParsedEvent, decode_event
from issuerind.decoding.registries import make_issuer_registry
from issuerind.decoding.events import to_domain_event

__all__ = [
    "ParsedEvent",
    "decode_event",
    "to_domain_event",
    "add_event_spec",
    "make_issuer_registry",
    "DataFieldSpec",
    "EventRegistry",
    "EventSpec",
    "Projection",
    "TopicFieldSpec",
]
