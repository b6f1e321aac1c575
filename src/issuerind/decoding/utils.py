"""Decoding utilities: typed topic parsers and ABI value normalization."""

from __future__ import annotations

from typing import Any

from .specs import TopicFieldSpec


def parse_topic_field(topic_hex: str, spec: TopicFieldSpec) -> Any:
    """Parse one indexed topic according to the declared type."""
    t = spec.type
    h = topic_hex.lower()
    if t == "address":
        return "0x" + h[-40:]
    if t == "bool":
        return int(h, 16) != 0
    if t.startswith("uint"):
        return int(h, 16)
    if t.startswith("int"):
        # topic words are sign-extended to 256 bits whatever the declared width
        v = int(h, 16)
        if v >= 2**255:
            v -= 2**256
        return v
    # bytesN, or the keccak hash of an indexed dynamic value: keep raw hex
    return h


def normalize_abi_value(value: Any, typ: str) -> Any:
    """Normalize one eth-abi decoded value into plain, JSON-friendly Python.

    - addresses → lowercased 0x hex
    - bytes / bytesN → 0x hex
    - arrays → tuples of normalized items
    - ints, bools and strings pass through
    """
    if typ.endswith("]"):
        inner = typ[: typ.rindex("[")]
        return tuple(normalize_abi_value(v, inner) for v in value)
    if typ == "address":
        return str(value).lower()
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def hex_to_bytes(data_hex: str) -> bytes:
    """Decode a (possibly 0x-prefixed) hex payload."""
    h = data_hex[2:] if data_hex.lower().startswith("0x") else data_hex
    return bytes.fromhex(h) if h else b""
