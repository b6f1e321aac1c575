"""State projection: apply issuer lifecycle events to the key-value store.

Each event becomes one atomic store batch that writes the issuer record and
moves the address between status indexes. The checks that precede a batch
(does the record exist, is it still pending) are serialized per address with
striped asyncio locks, so concurrent push deliveries for the same issuer
cannot interleave their read-check-write sequences.

Rules
-----
- Submitted: upsert a pending record; pending-index membership is idempotent
  (LREM then LPUSH). A submission over a terminal record is ignored.
- Approved / Rejected: only a pending record moves. Unknown issuers are a
  logged no-op; replays of the same terminal transition are no-ops; the
  opposite terminal transition is refused with a warning.
"""

from __future__ import annotations

import asyncio
import logging
import zlib
from typing import assert_never

from issuerind.core.interfaces import IKeyValueStore
from issuerind.core.models import (
    ALL_STATUSES,
    ApplicationSubmitted,
    DecodedEvent,
    EventMeta,
    IssuerApproved,
    IssuerRecord,
    IssuerRejected,
    IssuerStatus,
    ProjectionOutcome,
)
from issuerind.storage.keys import (
    ISSUER_KEY_PREFIX,
    issuer_key,
    normalize_address,
    status_index_key,
)

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


class StateProjector:
    """Applies `DecodedEvent`s to the store."""

    def __init__(self, store: IKeyValueStore, *, stripes: int = LOCK_STRIPES) -> None:
        self._store = store
        self._locks = [asyncio.Lock() for _ in range(stripes)]

    def _lock_for(self, address: str) -> asyncio.Lock:
        return self._locks[zlib.crc32(address.encode()) % len(self._locks)]

    async def _load(self, address: str) -> IssuerRecord | None:
        data = await self._store.hgetall(issuer_key(address))
        return IssuerRecord.from_hash(data) if data else None

    async def apply(self, decoded: DecodedEvent) -> ProjectionOutcome:
        """Project one event. Store failures propagate; domain inconsistencies do not."""
        ev = decoded.event
        match ev:
            case ApplicationSubmitted():
                return await self.apply_submitted(ev, decoded.meta)
            case IssuerApproved():
                return await self.apply_approved(ev, decoded.meta)
            case IssuerRejected():
                return await self.apply_rejected(ev, decoded.meta)
            case _:
                assert_never(ev)

    async def apply_submitted(self, ev: ApplicationSubmitted, meta: EventMeta) -> ProjectionOutcome:
        address = normalize_address(ev.issuer)
        async with self._lock_for(address):
            existing = await self._load(address)
            if existing is not None and existing.status.is_terminal:
                logger.warning(
                    "Ignoring application for %s at block %d: issuer already %s",
                    address,
                    meta.block_number,
                    existing.status.value,
                )
                return "skipped"

            record = IssuerRecord(
                address=address,
                name=ev.name,
                requested_categories=list(ev.requested_categories),
                proposed_fixed_fee=ev.proposed_fixed_fee,
                public_key=ev.public_key,
                stake_amount=ev.stake_amount,
                status=IssuerStatus.PENDING,
                submitted_at=meta.timestamp,
                updated_at=meta.timestamp,
                tx_hash=meta.tx_hash,
                block_number=meta.block_number,
            )
            pending = status_index_key(IssuerStatus.PENDING)
            await (
                self._store.batch()
                .hset(issuer_key(address), record.to_hash())
                .lrem(pending, address)
                .lpush(pending, address)
                .execute()
            )

        logger.info(
            "Issuer application submitted: %s (%s) tx=%s block=%d",
            address,
            ev.name,
            meta.tx_hash,
            meta.block_number,
        )
        return "applied"

    async def _transition(
        self,
        address: str,
        target: IssuerStatus,
        fields: dict[str, str],
        meta: EventMeta,
    ) -> ProjectionOutcome:
        address = normalize_address(address)
        async with self._lock_for(address):
            existing = await self._load(address)
            if existing is None:
                logger.warning(
                    "%s event for unknown issuer %s (tx=%s block=%d); ignoring",
                    target.value.capitalize(),
                    address,
                    meta.tx_hash,
                    meta.block_number,
                )
                return "missing"
            if existing.status is target:
                logger.debug("Issuer %s already %s; replay ignored", address, target.value)
                return "skipped"
            if existing.status.is_terminal:
                logger.warning(
                    "Refusing %s -> %s for issuer %s (tx=%s)",
                    existing.status.value,
                    target.value,
                    address,
                    meta.tx_hash,
                )
                return "skipped"

            batch = self._store.batch().hset(
                issuer_key(address),
                {"status": target.value, "updatedAt": str(meta.timestamp), **fields},
            )
            for status in ALL_STATUSES:
                batch.lrem(status_index_key(status), address)
            await batch.lpush(status_index_key(target), address).execute()

        logger.info(
            "Issuer %s: %s tx=%s block=%d",
            target.value,
            address,
            meta.tx_hash,
            meta.block_number,
        )
        return "applied"

    async def apply_approved(self, ev: IssuerApproved, meta: EventMeta) -> ProjectionOutcome:
        return await self._transition(
            ev.issuer,
            IssuerStatus.APPROVED,
            {
                "attestationUID": ev.attestation_uid,
                "approveFixedFee": "true" if ev.approve_fixed_fee else "false",
            },
            meta,
        )

    async def apply_rejected(self, ev: IssuerRejected, meta: EventMeta) -> ProjectionOutcome:
        return await self._transition(ev.issuer, IssuerStatus.REJECTED, {}, meta)

    async def clear(self) -> int:
        """Delete every issuer record and status index. Returns the number of keys removed."""
        keys = await self._store.keys(f"{ISSUER_KEY_PREFIX}*")
        keys += [status_index_key(s) for s in ALL_STATUSES]
        removed = await self._store.delete(*keys)
        logger.info("Cleared projection (%d keys)", removed)
        return removed
