"""Store key layout for the projection."""

from __future__ import annotations

from issuerind.core.models import IssuerStatus

ISSUER_KEY_PREFIX = "issuer:"
STATUS_INDEX_PREFIX = "issuers:"


def normalize_address(address: str) -> str:
    return address.strip().lower()


def issuer_key(address: str) -> str:
    return f"{ISSUER_KEY_PREFIX}{normalize_address(address)}"


def status_index_key(status: IssuerStatus) -> str:
    return f"{STATUS_INDEX_PREFIX}{status.value}"
