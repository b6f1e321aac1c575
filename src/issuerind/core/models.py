"""Core data models for the issuer lifecycle indexer.

This module defines:
- `EventLog`: minimal RPC log record used by the decoder.
- `EventMeta`: chain metadata attached to every decoded event.
- Domain events (`ApplicationSubmitted`, `IssuerApproved`, `IssuerRejected`)
  and the closed `DomainEvent` union consumed by the projector.
- `IssuerRecord`: the projected per-issuer state and its Redis hash layout.
- Query/run DTOs (`IssuerPage`, `StatusCounts`, `HealthReport`, `ProcessStats`).

Design notes
------------
- Addresses are always stored lowercased; checksumming is a display concern.
- Big integers (fees, stakes) are kept as decimal strings for exactness.
- Timestamps are milliseconds since epoch, derived from the block header so
  that replays produce byte-identical records.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union


class IssuerStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not IssuerStatus.PENDING


ALL_STATUSES: tuple[IssuerStatus, ...] = (
    IssuerStatus.PENDING,
    IssuerStatus.APPROVED,
    IssuerStatus.REJECTED,
)


# === RPC record ===


@dataclass(slots=True, frozen=True)
class EventLog:
    """Raw log as fetched from RPC or a subscription, minimally normalized."""

    address: str  # lowercased 0x...
    topics: tuple[str, ...]  # lowercased 0x...
    data_hex: str  # "0x..."
    block_number: int
    tx_hash: str  # lowercased 0x...
    log_index: int
    block_timestamp: int | None = None  # seconds, when the node includes it
    removed: bool = False


@dataclass(slots=True, frozen=True)
class EventMeta:
    """Chain metadata for a single decoded event."""

    tx_hash: str
    block_number: int
    log_index: int
    timestamp: int  # ms since epoch


# === Domain events ===


@dataclass(slots=True, frozen=True)
class ApplicationSubmitted:
    issuer: str
    name: str
    requested_categories: tuple[str, ...]
    proposed_fixed_fee: str
    public_key: str
    stake_amount: str


@dataclass(slots=True, frozen=True)
class IssuerApproved:
    caller: str
    issuer: str
    attestation_uid: str
    approve_fixed_fee: bool


@dataclass(slots=True, frozen=True)
class IssuerRejected:
    caller: str
    issuer: str


DomainEvent = Union[ApplicationSubmitted, IssuerApproved, IssuerRejected]


@dataclass(slots=True, frozen=True)
class DecodedEvent:
    """A typed domain event together with its chain metadata."""

    event: DomainEvent
    meta: EventMeta

    @property
    def name(self) -> str:
        return type(self.event).__name__


# === Projected state ===


@dataclass(slots=True)
class IssuerRecord:
    """Projected state of one issuer, stored as a Redis hash."""

    address: str
    name: str
    requested_categories: list[str]
    proposed_fixed_fee: str
    public_key: str
    stake_amount: str
    status: IssuerStatus
    submitted_at: int
    updated_at: int
    tx_hash: str
    block_number: int
    attestation_uid: str | None = None
    approve_fixed_fee: bool | None = None

    def to_hash(self) -> dict[str, str]:
        """Flatten into string fields for HSET. Optional fields are omitted when unset."""
        out = {
            "address": self.address,
            "name": self.name,
            "requestedCategories": json.dumps(self.requested_categories),
            "proposedFixedFee": self.proposed_fixed_fee,
            "publicKey": self.public_key,
            "stakeAmount": self.stake_amount,
            "status": self.status.value,
            "submittedAt": str(self.submitted_at),
            "updatedAt": str(self.updated_at),
            "txHash": self.tx_hash,
            "blockNumber": str(self.block_number),
        }
        if self.attestation_uid is not None:
            out["attestationUID"] = self.attestation_uid
        if self.approve_fixed_fee is not None:
            out["approveFixedFee"] = "true" if self.approve_fixed_fee else "false"
        return out

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> IssuerRecord:
        """Rebuild a record from an HGETALL result."""
        fee_flag = data.get("approveFixedFee")
        return cls(
            address=data["address"],
            name=data.get("name", ""),
            requested_categories=list(json.loads(data.get("requestedCategories") or "[]")),
            proposed_fixed_fee=data.get("proposedFixedFee", "0"),
            public_key=data.get("publicKey", "0x"),
            stake_amount=data.get("stakeAmount", "0"),
            status=IssuerStatus(data["status"]),
            submitted_at=int(data.get("submittedAt") or 0),
            updated_at=int(data.get("updatedAt") or 0),
            tx_hash=data.get("txHash", ""),
            block_number=int(data.get("blockNumber") or 0),
            attestation_uid=data.get("attestationUID") or None,
            approve_fixed_fee=None if fee_flag is None else fee_flag == "true",
        )


# === Query DTOs ===


@dataclass(slots=True)
class IssuerPage:
    issuers: list[IssuerRecord]
    total: int
    limit: int
    offset: int


@dataclass(slots=True)
class StatusCounts:
    pending: int = 0
    approved: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.approved + self.rejected


HealthState = Literal["healthy", "degraded", "unhealthy"]


@dataclass(slots=True)
class ServiceHealth:
    healthy: bool
    response_ms: float
    error: str | None = None


@dataclass(slots=True)
class HealthReport:
    status: HealthState
    store: ServiceHealth
    chain: ServiceHealth
    last_processed_block: int | None = None
    current_block: int | None = None
    counts: StatusCounts | None = None


# === Run stats ===


ProjectionOutcome = Literal["applied", "skipped", "missing"]


@dataclass(kw_only=True)
class ProcessStats:
    """
    Aggregated counters for an ingestion run.

    Mutated by the orchestrators as they fetch, decode and project logs.
    """

    batches_ok: int = 0
    batches_failed: int = 0
    total_logs: int = 0
    decoded: int = 0
    filtered: int = 0
    applied: int = 0
    skipped: int = 0
    missing: int = 0
    retries: int = 0
    last_block: int | None = None
    failed_ranges: list[tuple[int, int]] = field(default_factory=list)

    def record(self, outcome: ProjectionOutcome) -> None:
        if outcome == "applied":
            self.applied += 1
        elif outcome == "skipped":
            self.skipped += 1
        else:
            self.missing += 1


@dataclass(slots=True)
class BackfillStatus:
    last_processed_block: int
    current_block: int

    @property
    def remaining(self) -> int:
        return max(0, self.current_block - self.last_processed_block)
