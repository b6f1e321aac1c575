"""Event specification primitives and registry typing.

Defines lightweight dataclasses to describe how to decode events:
- `TopicFieldSpec` / `DataFieldSpec`: typed sources for indexed topics / ABI data
- `EventSpec`: one event rule (topic0, fields, projection)
- `EventRegistry`: mapping from topic0 → EventSpec
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any


# ---- Projection mapping ----
# Keys: output names handed to the domain mapper (e.g., "issuer", "attestation_uid")
# Values: references to parsed fields or constant strings
#   - ProjectionRefs.TopicRef(name="<name>")  → take from parsed indexed topic fields
#   - ProjectionRefs.DataRef(name="<name>")   → take from decoded data values
#   - ProjectionRefs.Constant(value="value")  → output a constant string
class ProjectionRefs:
    @dataclass(kw_only=True)
    class TopicRef:
        name: str

    @dataclass(kw_only=True)
    class DataRef:
        name: str

    @dataclass(kw_only=True)
    class Constant:
        value: str


ProjectionRef = ProjectionRefs.TopicRef | ProjectionRefs.DataRef | ProjectionRefs.Constant | None

Projection = Mapping[str, ProjectionRef]


def resolve_projection_ref(
    ref: ProjectionRef,
    topic_vals: dict[str, Any],
    data_vals: dict[str, Any],
) -> Any:
    """Resolve a projection reference"""
    if ref is None:
        return None
    match ref:
        case ProjectionRefs.TopicRef():
            return topic_vals.get(ref.name)
        case ProjectionRefs.DataRef():
            return data_vals.get(ref.name)
        case ProjectionRefs.Constant():
            return ref.value
    raise RuntimeError("Unsupported ProjectionEntry type")


@dataclass(frozen=True)
class TopicFieldSpec:
    """Describe one indexed topic field (by topic index and ABI type)."""

    name: str
    index: int  # 1-based; topic 0 is the event signature
    type: str  # e.g., "address", "uint256", "bytes32"


@dataclass(frozen=True)
class DataFieldSpec:
    """Describe one non-indexed parameter, in ABI order within the data section."""

    name: str
    position: int
    type: str  # any ABI type, dynamic ones included ("string", "bytes", "bytes32[]")


@dataclass(frozen=True)
class EventSpec:
    """One event decoding rule + projection."""

    topic0: str
    name: str
    topic_fields: list[TopicFieldSpec]
    data_fields: list[DataFieldSpec]
    projection: Projection

    def __post_init__(self):
        def _find_matches(ref_name: str, fields: Sequence[TopicFieldSpec | DataFieldSpec]):
            return [field for field in fields if field.name == ref_name]

        for name, projection_ref in self.projection.items():
            if not isinstance(projection_ref, ProjectionRef):
                raise ValueError(f"{name} projection is not a ProjectionRef instance")
            match projection_ref:
                case ProjectionRefs.TopicRef():
                    if not _find_matches(projection_ref.name, self.topic_fields):
                        raise ValueError(f"{name} projection refers to an non-existant topic field")
                case ProjectionRefs.DataRef():
                    if not _find_matches(projection_ref.name, self.data_fields):
                        raise ValueError(f"{name} projection refers to an non-existant data field")

    @property
    def data_types(self) -> list[str]:
        return [df.type for df in sorted(self.data_fields, key=lambda df: df.position)]


# The full registry keyed by topic0 (lowercased 0x-hex).
EventRegistry = dict[str, EventSpec]


def add_event_spec(registry: EventRegistry, spec: EventSpec) -> None:
    """Insert one spec into the registry keyed by lowercased topic0."""
    registry[spec.topic0.lower()] = spec


def get_event_specs_topic0s(event_specs: Iterable[EventSpec]) -> list[str]:
    return [event_spec.topic0 for event_spec in event_specs]


def get_event_registry_topic0s(registry: EventRegistry) -> list[str]:
    return get_event_specs_topic0s(registry.values())
