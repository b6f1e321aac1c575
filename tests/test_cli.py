from pathlib import Path
from unittest.mock import AsyncMock

import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner
from conftest import CONTRACT, ISSUER_A, ISSUER_B, FakeChain, LogFactory

from issuerind.cli import cli
from issuerind.core.errors import RpcError
from issuerind.storage.memory import InMemoryStore


@pytest.fixture
def wired(monkeypatch: pytest.MonkeyPatch, logs: LogFactory) -> tuple[FakeChain, InMemoryStore]:
    for var in ("CONTRACT_ADDRESS", "RPC_URL", "WSS_URL", "START_BLOCK", "REDIS_PORT", "REDIS_DB"):
        monkeypatch.delenv(var, raising=False)
    chain = FakeChain(
        [
            logs.submitted(ISSUER_A, block=120),
            logs.submitted(ISSUER_B, block=130),
            logs.approved(ISSUER_A, block=250),
        ],
        head=300,
    )
    store = InMemoryStore()
    monkeypatch.setattr("issuerind.cli.RPC", lambda url, **kw: chain)
    monkeypatch.setattr("issuerind.cli._make_store", lambda state: store)
    return chain, store


def invoke(*args: str):
    return CliRunner().invoke(cli, ["--contract", CONTRACT, "--store", "memory", *args])


def test_backfill_then_query(wired, tmp_path: Path) -> None:
    chain, store = wired

    result = invoke("--start-block", "100", "backfill", "--batch-size", "100", "--delay", "0")
    assert result.exit_code == 0, result.output
    assert "applied" in result.output
    assert chain.calls == [(100, 199), (200, 299), (300, 300)]

    result = invoke("status")
    assert result.exit_code == 0, result.output
    assert "300" in result.output

    result = invoke("list", "--status", "approved")
    assert result.exit_code == 0, result.output
    assert "1 of 1" in result.output

    result = invoke("issuer", ISSUER_A)
    assert result.exit_code == 0, result.output
    assert "approved" in result.output

    out = tmp_path / "issuers.parquet"
    result = invoke("export", str(out))
    assert result.exit_code == 0, result.output
    assert pq.read_table(out).column("address").to_pylist() == [ISSUER_A, ISSUER_B]


def test_backfill_rejects_bad_batch_size(wired) -> None:
    result = invoke("backfill", "--batch-size", "5000")
    assert result.exit_code != 0
    assert "batch_size" in result.output


def test_unknown_issuer(wired) -> None:
    result = invoke("issuer", ISSUER_A)
    assert result.exit_code == 1
    assert "not found" in result.output


def test_list_rejects_out_of_range_limit(wired) -> None:
    result = invoke("list", "--limit", "0")
    assert result.exit_code != 0


def test_reset_all(wired) -> None:
    _, store = wired
    assert invoke("backfill", "--delay", "0").exit_code == 0

    result = invoke("reset", "--all", "--yes")

    assert result.exit_code == 0, result.output
    assert "4 issuer keys removed" in result.output
    assert store._hashes == {} and store._lists == {} and store._strings == {}


def test_poll_once_catches_up_from_start_block(wired) -> None:
    chain, store = wired
    result = invoke("poll", "--once")
    assert result.exit_code == 0, result.output
    assert chain.calls == [(0, 300)]
    assert store._strings["backfill:last_processed_block"] == "300"
    assert store._hashes["issuer:" + ISSUER_A]["status"] == "approved"


def test_health(wired) -> None:
    result = invoke("health")
    assert result.exit_code == 0, result.output
    assert "healthy" in result.output


def test_missing_contract_is_a_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CONTRACT_ADDRESS", raising=False)
    result = CliRunner().invoke(cli, ["--store", "memory", "status"])
    assert result.exit_code == 1
    assert "CONTRACT_ADDRESS" in result.output


def test_unreachable_store_is_fatal(wired, monkeypatch: pytest.MonkeyPatch) -> None:
    dead = AsyncMock()
    dead.ping = AsyncMock(return_value=False)
    monkeypatch.setattr("issuerind.cli._make_store", lambda state: dead)

    result = invoke("status")

    assert result.exit_code == 1
    assert "cannot reach the store" in result.output


@pytest.mark.parametrize("args", [("status",), ("backfill", "--delay", "0")])
def test_unreachable_rpc_is_reported_without_traceback(wired, args: tuple[str, ...]) -> None:
    chain, _ = wired
    chain.latest_block = AsyncMock(side_effect=RpcError("RPC transport error on eth_blockNumber: connection refused"))

    result = invoke(*args)

    assert result.exit_code == 1
    assert "connection refused" in result.output
    assert "Traceback" not in result.output
    assert isinstance(result.exception, SystemExit)
