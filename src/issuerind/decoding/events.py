"""Map generic `ParsedEvent` values onto the typed issuer domain events."""

from __future__ import annotations

import logging

from issuerind.core.models import ApplicationSubmitted, DomainEvent, IssuerApproved, IssuerRejected
from issuerind.decoding.decoder import ParsedEvent
from issuerind.decoding.registries import APPLICATION_SUBMITTED, ISSUER_APPROVED, ISSUER_REJECTED

logger = logging.getLogger(__name__)


def to_domain_event(pe: ParsedEvent) -> DomainEvent | None:
    """Build the domain event for a parsed log, or None for names we do not project."""
    v = pe.values
    try:
        if pe.name == APPLICATION_SUBMITTED:
            return ApplicationSubmitted(
                issuer=str(v["issuer"]).lower(),
                name=str(v["name"]),
                requested_categories=tuple(str(c) for c in v["requestedCategories"]),
                proposed_fixed_fee=str(v["proposedFixedFee"]),
                public_key=str(v["publicKey"]),
                stake_amount=str(v["stakeAmount"]),
            )
        if pe.name == ISSUER_APPROVED:
            return IssuerApproved(
                caller=str(v["caller"]).lower(),
                issuer=str(v["issuer"]).lower(),
                attestation_uid=str(v["attestationUID"]),
                approve_fixed_fee=bool(v["approveFixedFee"]),
            )
        if pe.name == ISSUER_REJECTED:
            return IssuerRejected(
                caller=str(v["caller"]).lower(),
                issuer=str(v["issuer"]).lower(),
            )
    except KeyError as e:
        logger.warning("%s in tx %s lacks field %s", pe.name, pe.log.tx_hash, e)
        return None
    logger.debug("Ignoring event %s", pe.name)
    return None
