"""Generic event decoder driven by an `EventRegistry`.

This module translates raw logs into `ParsedEvent` using an `EventRegistry`
defined by `EventSpec` + (topic|data) field specs. Indexed parameters come
from the topics; everything else is ABI-decoded from the data section with
eth-abi, so dynamic types (`string`, `bytes`, arrays) are supported.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from issuerind.core.models import EventLog
from issuerind.decoding.specs import EventRegistry, EventSpec, resolve_projection_ref
from issuerind.decoding.utils import hex_to_bytes, normalize_abi_value, parse_topic_field

logger = logging.getLogger(__name__)

# ---------- parsed event ----------


@dataclass(slots=True)
class ParsedEvent:
    """Decoded event with open-ended `values` keyed by projection name."""

    name: str
    contract: str
    log: EventLog
    values: dict[str, Any]


# ---------- helper functions ----------


def _validate_and_get_spec(topics: Sequence[str], registry: EventRegistry) -> EventSpec | None:
    """Validate topics and retrieve event spec from registry.

    Returns None if topics are invalid or spec not found.
    """
    if not topics:
        return None
    return registry.get(topics[0].lower())


def _decode_data(spec: EventSpec, data: bytes) -> dict[str, Any] | None:
    if not spec.data_fields:
        return {}
    types = spec.data_types
    try:
        raw = abi_decode(types, data)
    except (DecodingError, ValueError, OverflowError) as e:
        logger.warning("Malformed %s payload: %s", spec.name, e)
        return None
    ordered = sorted(spec.data_fields, key=lambda df: df.position)
    return {df.name: normalize_abi_value(v, df.type) for df, v in zip(ordered, raw)}


# ---------- main generic decoder ----------


def decode_event(*, log: EventLog, registry: EventRegistry) -> ParsedEvent | None:
    """Decode a raw log into a `ParsedEvent`, or return None if it is not ours.

    None covers: no topics, unknown topic0, missing indexed topics, and data
    that does not ABI-decode against the spec. Callers treat all of these as
    "unrecognized" and move on.
    """
    spec = _validate_and_get_spec(log.topics, registry)
    if spec is None:
        return None

    # Parse topic fields
    topic_vals: dict[str, Any] = {}
    for tf in spec.topic_fields:
        if tf.index >= len(log.topics):
            logger.warning("%s log in tx %s is missing topic %d", spec.name, log.tx_hash, tf.index)
            return None
        topic_vals[tf.name] = parse_topic_field(log.topics[tf.index], tf)

    try:
        data = hex_to_bytes(log.data_hex)
    except ValueError:
        logger.warning("%s log in tx %s has non-hex data", spec.name, log.tx_hash)
        return None

    data_vals = _decode_data(spec, data)
    if data_vals is None:
        return None

    resolved = {
        out_key: resolve_projection_ref(ref, topic_vals, data_vals)
        for out_key, ref in spec.projection.items()
    }

    return ParsedEvent(
        name=spec.name,
        contract=log.address,
        log=log,
        values=resolved,
    )
