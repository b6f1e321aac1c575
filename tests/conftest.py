from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from eth_abi import encode
from eth_utils import keccak

from issuerind.adapters.event_source import EventSource
from issuerind.core.models import EventLog
from issuerind.core.use_cases.projection import StateProjector
from issuerind.decoding.registries import make_issuer_registry
from issuerind.decoding.specs import EventRegistry
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker

CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"
ADMIN = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
ISSUER_A = "0x1111111111111111111111111111111111111111"
ISSUER_B = "0x2222222222222222222222222222222222222222"
ISSUER_C = "0x3333333333333333333333333333333333333333"
PROGRESS_KEY = "backfill:last_processed_block"
GENESIS_TS = 1_700_000_000

SUBMITTED_SIG = "IssuerApplicationSubmitted(address,string,bytes32[],uint256,bytes,uint256)"
APPROVED_SIG = "IssuerApproved(address,address,bytes32,bool)"
REJECTED_SIG = "IssuerRejected(address,address)"


def topic0(signature: str) -> str:
    return "0x" + keccak(text=signature).hex()


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address.lower()[2:]


class LogFactory:
    """Builds ABI-encoded issuer lifecycle logs for the test contract."""

    def __init__(self) -> None:
        self._tx = 0

    def _log(self, topics: list[str], data: bytes, block: int, log_index: int, **kw: Any) -> EventLog:
        self._tx += 1
        return EventLog(
            address=kw.pop("address", CONTRACT),
            topics=tuple(topics),
            data_hex="0x" + data.hex(),
            block_number=block,
            tx_hash=f"0x{self._tx:064x}",
            log_index=log_index,
            **kw,
        )

    def submitted(
        self,
        issuer: str,
        block: int,
        log_index: int = 0,
        *,
        name: str = "Acme Credentials",
        categories: tuple[bytes, ...] = (b"kyc".ljust(32, b"\0"), b"age".ljust(32, b"\0")),
        fee: int = 10**18,
        public_key: bytes = b"\x04" + b"\xab" * 64,
        stake: int = 5 * 10**18,
        **kw: Any,
    ) -> EventLog:
        data = encode(
            ["string", "bytes32[]", "uint256", "bytes", "uint256"],
            [name, list(categories), fee, public_key, stake],
        )
        return self._log([topic0(SUBMITTED_SIG), address_topic(issuer)], data, block, log_index, **kw)

    def approved(
        self,
        issuer: str,
        block: int,
        log_index: int = 0,
        *,
        attestation_uid: bytes = b"\x01" * 32,
        approve_fee: bool = True,
        **kw: Any,
    ) -> EventLog:
        data = encode(["bytes32", "bool"], [attestation_uid, approve_fee])
        topics = [topic0(APPROVED_SIG), address_topic(ADMIN), address_topic(issuer)]
        return self._log(topics, data, block, log_index, **kw)

    def rejected(self, issuer: str, block: int, log_index: int = 0, **kw: Any) -> EventLog:
        topics = [topic0(REJECTED_SIG), address_topic(ADMIN), address_topic(issuer)]
        return self._log(topics, b"", block, log_index, **kw)


class FakeChain:
    """In-memory chain: serves `logs` by block range, timestamps derived from the block number."""

    def __init__(self, logs: list[EventLog] | None = None, head: int = 1_000) -> None:
        self.logs = list(logs or [])
        self.head = head
        self.calls: list[tuple[int, int]] = []
        self.fail: Callable[[int, int], Exception | None] | None = None

    async def latest_block(self) -> int:
        return self.head

    async def block_timestamp(self, block_number: int) -> int:
        return GENESIS_TS + 2 * block_number

    async def get_logs(self, *, address: str, topic0s: list[str], from_block: int, to_block: int) -> list[EventLog]:
        self.calls.append((from_block, to_block))
        if self.fail is not None:
            error = self.fail(from_block, to_block)
            if error is not None:
                raise error
        wanted = {t.lower() for t in topic0s}
        return [
            lg
            for lg in self.logs
            if from_block <= lg.block_number <= to_block
            and lg.address == address.lower()
            and lg.topics
            and lg.topics[0] in wanted
        ]

    async def aclose(self) -> None:
        return None


@pytest.fixture
def logs() -> LogFactory:
    return LogFactory()


@pytest.fixture
def registry() -> EventRegistry:
    return make_issuer_registry()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def projector(store: InMemoryStore) -> StateProjector:
    return StateProjector(store)


@pytest.fixture
def progress(store: InMemoryStore) -> ProgressTracker:
    return ProgressTracker(store, key=PROGRESS_KEY, start_block=0)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def source(chain: FakeChain, registry: EventRegistry) -> EventSource:
    return EventSource(chain=chain, address=CONTRACT, registry=registry)
