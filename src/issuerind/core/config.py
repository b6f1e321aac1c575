from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import quote

from eth_utils import is_address

from issuerind.core.errors import ConfigurationError

ErrorPolicy = Literal["strict", "best-effort"]

DEFAULT_RPC_URL = "https://humanity-testnet.g.alchemy.com/public"
DEFAULT_PROGRESS_KEY = "backfill:last_processed_block"


@dataclass(frozen=True)
class ChainConfig:
    """Where to read the issuer contract from."""

    rpc_url: str
    contract_address: str
    ws_url: str | None = None
    start_block: int = 0
    timeout_s: int = 20


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    db: int = 0

    @property
    def url(self) -> str:
        auth = f":{quote(self.password, safe='')}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


@dataclass(frozen=True)
class PollingConfig:
    interval_s: float = 10.0
    retry_interval_s: float = 5.0
    batch_size: int = 999  # widest eth_getLogs window per call when catching up


@dataclass(frozen=True)
class SubscriptionConfig:
    reconnect_delay_s: float = 5.0
    max_attempts: int = 5  # consecutive failures before falling back to polling
    handler_retries: int = 3  # attempts to project one pushed log before dropping it


@dataclass(frozen=True)
class BackfillConfig:
    batch_size: int = 999  # eth_getLogs window is capped at 1000 blocks on most providers
    delay_s: float = 1.0
    error_policy: ErrorPolicy = "strict"
    retry_delay_s: float = 1.0
    max_backoff_s: float = 60.0


@dataclass(frozen=True)
class IndexerConfig:
    """Top-level configuration wired by the CLI."""

    chain: ChainConfig
    redis: RedisConfig = field(default_factory=RedisConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    subscription: SubscriptionConfig = field(default_factory=SubscriptionConfig)
    backfill: BackfillConfig = field(default_factory=BackfillConfig)
    progress_key: str = DEFAULT_PROGRESS_KEY

    def __post_init__(self) -> None:
        validate_config(self)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> IndexerConfig:
        """Build a config from environment variables (RPC_URL, CONTRACT_ADDRESS, REDIS_*, ...)."""
        env = os.environ if environ is None else environ
        password = (env.get("REDIS_PASSWORD") or "").strip() or None
        return cls(
            chain=ChainConfig(
                rpc_url=env.get("RPC_URL") or DEFAULT_RPC_URL,
                ws_url=env.get("WSS_URL") or None,
                contract_address=(env.get("CONTRACT_ADDRESS") or "").strip(),
                start_block=_int_env(env, "START_BLOCK", 0),
            ),
            redis=RedisConfig(
                host=env.get("REDIS_HOST") or "localhost",
                port=_int_env(env, "REDIS_PORT", 6379),
                password=password,
                db=_int_env(env, "REDIS_DB", 0),
            ),
        )


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw, 10)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def validate_config(config: IndexerConfig) -> None:
    """Raise ConfigurationError on anything that would make startup pointless."""
    chain = config.chain
    if not chain.contract_address:
        raise ConfigurationError("CONTRACT_ADDRESS is required")
    if not is_address(chain.contract_address):
        raise ConfigurationError(f"CONTRACT_ADDRESS is not a valid address: {chain.contract_address!r}")
    if chain.start_block < 0:
        raise ConfigurationError("start_block must be >= 0")
    if not 1 <= config.backfill.batch_size <= 1000:
        raise ConfigurationError("backfill batch_size must be within 1..1000")
    if not 1 <= config.polling.batch_size <= 1000:
        raise ConfigurationError("polling batch_size must be within 1..1000")
    if config.backfill.error_policy not in ("strict", "best-effort"):
        raise ConfigurationError(f"unknown backfill error policy: {config.backfill.error_policy!r}")
    if config.subscription.max_attempts < 1:
        raise ConfigurationError("subscription max_attempts must be >= 1")
