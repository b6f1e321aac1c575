"""Parquet snapshot of the projected issuer state."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

import pyarrow as pa
import pyarrow.parquet as pq

from issuerind.core.models import IssuerRecord

ISSUER_SCHEMA = pa.schema(
    [
        ("address", pa.string()),
        ("name", pa.string()),
        ("status", pa.string()),
        ("requested_categories", pa.list_(pa.string())),
        ("proposed_fixed_fee", pa.string()),
        ("public_key", pa.string()),
        ("stake_amount", pa.string()),
        ("attestation_uid", pa.string()),
        ("approve_fixed_fee", pa.bool_()),
        ("submitted_at", pa.int64()),
        ("updated_at", pa.int64()),
        ("tx_hash", pa.string()),
        ("block_number", pa.int64()),
    ]
)


def issuers_to_arrow_table(records: Iterable[IssuerRecord]) -> pa.Table:
    """Columnar view of the records, most recently updated first."""
    rows = sorted(records, key=lambda r: (-r.updated_at, r.address))
    cols: dict[str, list] = {name: [] for name in ISSUER_SCHEMA.names}
    for r in rows:
        cols["address"].append(r.address)
        cols["name"].append(r.name)
        cols["status"].append(r.status.value)
        cols["requested_categories"].append(list(r.requested_categories))
        cols["proposed_fixed_fee"].append(r.proposed_fixed_fee)
        cols["public_key"].append(r.public_key)
        cols["stake_amount"].append(r.stake_amount)
        cols["attestation_uid"].append(r.attestation_uid)
        cols["approve_fixed_fee"].append(r.approve_fixed_fee)
        cols["submitted_at"].append(r.submitted_at)
        cols["updated_at"].append(r.updated_at)
        cols["tx_hash"].append(r.tx_hash)
        cols["block_number"].append(r.block_number)
    return pa.table(cols, schema=ISSUER_SCHEMA)


def write_issuers_parquet(records: Iterable[IssuerRecord], out_path: Path, *, codec: str = "zstd") -> int:
    """Write records to `out_path` atomically (tmp + replace). Returns the row count."""
    table = issuers_to_arrow_table(records)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = out_path.with_suffix(".tmp")
    pq.write_table(table, tmp, compression=codec)
    os.replace(tmp, out_path)
    return table.num_rows
