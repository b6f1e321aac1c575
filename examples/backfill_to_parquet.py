import asyncio
import os
from pathlib import Path

from issuerind.adapters.event_source import EventSource
from issuerind.clients.rpc import RPC
from issuerind.core.config import BackfillConfig, ChainConfig, IndexerConfig
from issuerind.core.log import configure_logging
from issuerind.core.use_cases.projection import StateProjector
from issuerind.core.use_cases.queries import QueryService
from issuerind.decoding.registries import make_issuer_registry
from issuerind.orchestration.backfill import BackfillService
from issuerind.storage.export import write_issuers_parquet
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker

EXAMPLES_ROOT = Path(__file__).parent
OUT = EXAMPLES_ROOT.parent / "data_examples" / "issuers.parquet"

config = IndexerConfig(
    chain=ChainConfig(
        rpc_url=os.environ.get("RPC_URL", "https://humanity-testnet.g.alchemy.com/public"),
        contract_address=os.environ["CONTRACT_ADDRESS"],
        start_block=int(os.environ.get("START_BLOCK", "0")),
    ),
    backfill=BackfillConfig(batch_size=999, delay_s=0.2, error_policy="best-effort"),
)


async def main():
    configure_logging("INFO")
    store = InMemoryStore()  # nothing persists; swap in RedisStore.from_config(config.redis) to keep state
    rpc = RPC(config.chain.rpc_url)
    try:
        source = EventSource(chain=rpc, address=config.chain.contract_address, registry=make_issuer_registry())
        progress = ProgressTracker(store, key=config.progress_key, start_block=config.chain.start_block)
        stats = await BackfillService(
            source=source,
            projector=StateProjector(store),
            progress=progress,
            config=config.backfill,
        ).run()
        print(stats)

        queries = QueryService(store, progress=progress, chain=rpc)
        print(await queries.counts())
        rows = write_issuers_parquet(await queries.list_all(), OUT)
        print(f"{rows} issuers written to {OUT}")
    finally:
        await rpc.aclose()


if __name__ == "__main__":
    asyncio.run(main())
