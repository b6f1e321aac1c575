"""Event registry for the issuer-registry contract.

The contract emits three lifecycle events:

- IssuerApplicationSubmitted(address indexed issuer, string name, bytes32[] requestedCategories,
  uint256 proposedFixedFee, bytes publicKey, uint256 stakeAmount)
- IssuerApproved(address indexed caller, address indexed issuer, bytes32 attestationUID,
  bool approveFixedFee)
- IssuerRejected(address indexed caller, address indexed issuer)

Example
-------
>>> from issuerind.decoding.registries import make_issuer_registry
>>> reg = make_issuer_registry()
>>> sorted(spec.name for spec in reg.values())
['IssuerApplicationSubmitted', 'IssuerApproved', 'IssuerRejected']
"""

from __future__ import annotations

from pathlib import Path

from issuerind.abi_events import make_event_registry_from_abi

from .specs import EventRegistry

APPLICATION_SUBMITTED = "IssuerApplicationSubmitted"
ISSUER_APPROVED = "IssuerApproved"
ISSUER_REJECTED = "IssuerRejected"

ISSUER_EVENT_NAMES = (APPLICATION_SUBMITTED, ISSUER_APPROVED, ISSUER_REJECTED)


def _inp(name: str, typ: str, indexed: bool = False) -> dict[str, object]:
    return {"indexed": indexed, "internalType": typ, "name": name, "type": typ}


ISSUER_CONTRACT_ABI: list[dict[str, object]] = [
    {
        "anonymous": False,
        "type": "event",
        "name": APPLICATION_SUBMITTED,
        "inputs": [
            _inp("issuer", "address", indexed=True),
            _inp("name", "string"),
            _inp("requestedCategories", "bytes32[]"),
            _inp("proposedFixedFee", "uint256"),
            _inp("publicKey", "bytes"),
            _inp("stakeAmount", "uint256"),
        ],
    },
    {
        "anonymous": False,
        "type": "event",
        "name": ISSUER_APPROVED,
        "inputs": [
            _inp("caller", "address", indexed=True),
            _inp("issuer", "address", indexed=True),
            _inp("attestationUID", "bytes32"),
            _inp("approveFixedFee", "bool"),
        ],
    },
    {
        "anonymous": False,
        "type": "event",
        "name": ISSUER_REJECTED,
        "inputs": [
            _inp("caller", "address", indexed=True),
            _inp("issuer", "address", indexed=True),
        ],
    },
]


def make_issuer_registry(abi_path: Path | None = None) -> EventRegistry:
    """Return the registry for the three issuer lifecycle events.

    `abi_path` lets a deployment point at the contract's own ABI artifact;
    events other than the three lifecycle ones are dropped from it.
    """
    reg = make_event_registry_from_abi(abi_path if abi_path is not None else ISSUER_CONTRACT_ABI)
    reg = {t0: spec for t0, spec in reg.items() if spec.name in ISSUER_EVENT_NAMES}
    missing = set(ISSUER_EVENT_NAMES) - {spec.name for spec in reg.values()}
    if missing:
        raise ValueError(f"ABI is missing issuer events: {sorted(missing)}")
    return reg
