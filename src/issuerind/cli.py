import asyncio
import os
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from pathlib import Path

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from issuerind.adapters.event_source import EventSource
from issuerind.clients.rpc import RPC
from issuerind.clients.ws import WebSocketSubscriber
from issuerind.core.config import IndexerConfig
from issuerind.core.errors import ConfigurationError, IndexerError
from issuerind.core.interfaces import IKeyValueStore
from issuerind.core.log import configure_logging
from issuerind.core.models import IssuerRecord, IssuerStatus, ProcessStats
from issuerind.core.use_cases.projection import StateProjector
from issuerind.core.use_cases.queries import DEFAULT_LIMIT, QueryService
from issuerind.decoding.registries import make_issuer_registry
from issuerind.orchestration.backfill import BackfillService, resolve_block_range
from issuerind.orchestration.polling import PollingService
from issuerind.orchestration.runner import IndexerRunner
from issuerind.orchestration.utils import StopToken, iter_chunks
from issuerind.storage.export import write_issuers_parquet
from issuerind.storage.memory import InMemoryStore
from issuerind.storage.progress import ProgressTracker
from issuerind.storage.redis_store import RedisStore

console = Console()

# CLI option -> environment variable it overrides
_ENV_OPTIONS = {
    "rpc": "RPC_URL",
    "ws": "WSS_URL",
    "contract": "CONTRACT_ADDRESS",
    "start_block": "START_BLOCK",
    "redis_host": "REDIS_HOST",
    "redis_port": "REDIS_PORT",
    "redis_password": "REDIS_PASSWORD",
    "redis_db": "REDIS_DB",
}


@dataclass
class CliState:
    options: dict[str, object]
    store_kind: str = "redis"
    abi_path: Path | None = None
    _config: IndexerConfig | None = None

    @property
    def config(self) -> IndexerConfig:
        """Environment first, CLI options on top; validated on first use."""
        if self._config is None:
            env = dict(os.environ)
            for opt, var in _ENV_OPTIONS.items():
                value = self.options.get(opt)
                if value is not None:
                    env[var] = str(value)
            try:
                self._config = IndexerConfig.from_env(env)
            except ConfigurationError as e:
                raise click.ClickException(f"invalid configuration: {e}") from e
        return self._config

    def override_backfill(self, **overrides: object) -> IndexerConfig:
        config = self.config
        try:
            self._config = replace(config, backfill=replace(config.backfill, **overrides))
        except ConfigurationError as e:
            raise click.BadParameter(str(e)) from e
        return self._config


@dataclass
class Services:
    config: IndexerConfig
    store: IKeyValueStore
    rpc: RPC
    source: EventSource
    projector: StateProjector
    progress: ProgressTracker
    queries: QueryService


def _make_store(state: CliState) -> IKeyValueStore:
    if state.store_kind == "memory":
        return InMemoryStore()
    return RedisStore.from_config(state.config.redis)


@asynccontextmanager
async def open_services(
    state: CliState,
    *,
    with_ws: bool = False,
    require_store: bool = True,
) -> AsyncIterator[Services]:
    """Wire store, chain client and use cases; a store that does not answer PING is fatal."""
    config = state.config
    store = _make_store(state)
    rpc = RPC(config.chain.rpc_url, timeout_s=config.chain.timeout_s)
    try:
        if require_store and not await store.ping():
            raise click.ClickException(f"cannot reach the store at {config.redis.host}:{config.redis.port}")
        try:
            registry = make_issuer_registry(state.abi_path)
        except (OSError, ValueError) as e:
            raise click.ClickException(f"cannot load the issuer ABI: {e}") from e
        subscriber = WebSocketSubscriber(config.chain.ws_url) if with_ws and config.chain.ws_url else None
        source = EventSource(
            chain=rpc,
            address=config.chain.contract_address,
            registry=registry,
            subscriber=subscriber,
        )
        progress = ProgressTracker(store, key=config.progress_key, start_block=config.chain.start_block)
        yield Services(
            config=config,
            store=store,
            rpc=rpc,
            source=source,
            projector=StateProjector(store),
            progress=progress,
            queries=QueryService(store, progress=progress, chain=rpc),
        )
    finally:
        await rpc.aclose()
        await store.aclose()


def install_stop_handlers(stop: StopToken) -> None:
    """SIGINT/SIGTERM request a graceful stop instead of killing the loop."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass  # not supported on this platform / thread


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except IndexerError as e:
        raise click.ClickException(str(e)) from e


def _print_stats(stats: ProcessStats) -> None:
    console.print(
        f"[bold]summary[/]: "
        f"[green]applied[/]={stats.applied}  "
        f"[yellow]skipped[/]={stats.skipped}  "
        f"missing={stats.missing}  "
        f"logs={stats.total_logs}  "
        f"batches_ok={stats.batches_ok}  "
        f"[red]batches_failed[/]={stats.batches_failed}"
    )
    for start, end in stats.failed_ranges:
        console.print(f"[red]skipped range[/] {start:,}-{end:,}")


def _issuer_table(records: list[IssuerRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("address", style="cyan", no_wrap=True)
    table.add_column("name")
    table.add_column("status")
    table.add_column("stake", justify="right")
    table.add_column("fee", justify="right")
    table.add_column("block", justify="right")
    table.add_column("updated_at", justify="right")
    colors = {IssuerStatus.PENDING: "yellow", IssuerStatus.APPROVED: "green", IssuerStatus.REJECTED: "red"}
    for r in records:
        table.add_row(
            r.address,
            r.name,
            f"[{colors[r.status]}]{r.status.value}[/]",
            r.stake_amount,
            r.proposed_fixed_fee,
            str(r.block_number),
            str(r.updated_at),
        )
    return table


@click.group()
@click.option("--rpc", help="HTTP JSON-RPC endpoint (env RPC_URL)")
@click.option("--ws", help="WebSocket endpoint for live subscriptions (env WSS_URL)")
@click.option("--contract", help="Issuer registry contract address (env CONTRACT_ADDRESS)")
@click.option("--start-block", type=int, help="First block to index (env START_BLOCK)")
@click.option("--redis-host", help="env REDIS_HOST")
@click.option("--redis-port", type=int, help="env REDIS_PORT")
@click.option("--redis-password", help="env REDIS_PASSWORD")
@click.option("--redis-db", type=int, help="env REDIS_DB")
@click.option(
    "--store",
    "store_kind",
    type=click.Choice(["redis", "memory"]),
    default="redis",
    show_default=True,
    help="State backend; 'memory' keeps nothing after exit",
)
@click.option("--abi", "abi_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Contract ABI or artifact JSON")
@click.option("--log-level", help="env LOG_LEVEL")
@click.pass_context
def cli(ctx: click.Context, store_kind: str, abi_path: Path | None, **options: object) -> None:
    """Issuer registry indexer: projects issuer lifecycle events into Redis."""
    ctx.obj = CliState(options=options, store_kind=store_kind, abi_path=abi_path)
    configure_logging((options.get("log_level") or os.environ.get("LOG_LEVEL") or "INFO").upper())


@cli.command("run")
@click.option("--catch-up/--no-catch-up", default=False, show_default=True, help="Backfill up to head before going live")
@click.pass_obj
def run_cmd(state: CliState, catch_up: bool) -> None:
    """Index live events: subscription when a WebSocket URL is set, polling otherwise."""

    async def main() -> None:
        stop = StopToken()
        install_stop_handlers(stop)
        async with open_services(state, with_ws=True) as svc:
            runner = IndexerRunner(
                source=svc.source,
                projector=svc.projector,
                progress=svc.progress,
                config=svc.config,
                stop=stop,
            )
            stats = await runner.run(catch_up=catch_up)
        _print_stats(stats)

    _run(main())


@cli.command("poll")
@click.option("--once", is_flag=True, help="Run a single polling cycle and exit")
@click.pass_obj
def poll_cmd(state: CliState, once: bool) -> None:
    """Poll new blocks on an interval (no WebSocket)."""

    async def main() -> None:
        stop = StopToken()
        install_stop_handlers(stop)
        async with open_services(state) as svc:
            service = PollingService(
                source=svc.source,
                projector=svc.projector,
                progress=svc.progress,
                config=svc.config.polling,
                stop=stop,
            )
            if once:
                events = await service.poll_once()
                console.print(f"[bold]done[/]: {events} events, cursor at {await svc.progress.get():,}")
                return
            _print_stats(await service.run())

    _run(main())


@cli.command("backfill")
@click.option("--from-block", type=int, default=None, help="Defaults to max(start block, cursor + 1)")
@click.option("--to-block", default="latest", show_default=True, help="Block number or 'latest'")
@click.option("--batch-size", type=int, default=None, help="Blocks per eth_getLogs call (1..1000)")
@click.option("--delay", type=float, default=None, help="Seconds between batches")
@click.option(
    "--policy",
    type=click.Choice(["strict", "best-effort"]),
    default=None,
    help="strict retries a failing batch; best-effort skips it",
)
@click.pass_obj
def backfill_cmd(
    state: CliState,
    from_block: int | None,
    to_block: str,
    batch_size: int | None,
    delay: float | None,
    policy: str | None,
) -> None:
    """Replay historical events in batches, resuming from the cursor."""
    end_block: int | str = to_block if to_block.lower() == "latest" else _parse_block(to_block)
    overrides = {
        k: v
        for k, v in {"batch_size": batch_size, "delay_s": delay, "error_policy": policy}.items()
        if v is not None
    }
    config = state.override_backfill(**overrides)

    async def main() -> None:
        stop = StopToken()
        install_stop_handlers(stop)
        async with open_services(state) as svc:
            start, end = await resolve_block_range(svc.source, svc.progress, from_block, end_block)
            if start > end:
                console.print(f"[bold]up to date[/]: cursor at {await svc.progress.get():,}")
                return
            service = BackfillService(
                source=svc.source,
                projector=svc.projector,
                progress=svc.progress,
                config=config.backfill,
                stop=stop,
            )
            total = sum(1 for _ in iter_chunks(start, end, config.backfill.batch_size))
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold]backfilling[/]"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("•"),
                TimeElapsedColumn(),
                TextColumn("→"),
                TimeRemainingColumn(),
                TextColumn(" • {task.description}"),
                console=console,
                expand=True,
            )
            with progress:
                task = progress.add_task(description=f"{start:,}-{end:,}", total=total)

                def on_batch(batch_start: int, batch_end: int, events: int) -> None:
                    progress.update(task, advance=1, description=f"{batch_end:,} ({events} events)")

                stats = await service.run(start_block=start, end_block=end, on_batch=on_batch)
        _print_stats(stats)

    _run(main())


def _parse_block(raw: str) -> int:
    try:
        value = int(raw, 0)
    except ValueError as e:
        raise click.BadParameter(f"expected a block number or 'latest', got {raw!r}") from e
    if value < 0:
        raise click.BadParameter("block numbers are non-negative")
    return value


@cli.command("status")
@click.pass_obj
def status_cmd(state: CliState) -> None:
    """Show the cursor, the chain head and per-status issuer counts."""

    async def main() -> None:
        async with open_services(state) as svc:
            status = await BackfillService(
                source=svc.source,
                projector=svc.projector,
                progress=svc.progress,
                config=svc.config.backfill,
            ).status()
            counts = await svc.queries.counts()
        table = Table(title="indexer status", show_header=False)
        table.add_column("key", style="bold")
        table.add_column("value", justify="right")
        table.add_row("last processed block", f"{status.last_processed_block:,}")
        table.add_row("current block", f"{status.current_block:,}")
        table.add_row("blocks behind", f"{status.remaining:,}")
        table.add_row("pending", str(counts.pending))
        table.add_row("approved", str(counts.approved))
        table.add_row("rejected", str(counts.rejected))
        table.add_row("total", str(counts.total))
        console.print(table)

    _run(main())


@cli.command("reset")
@click.option("--all", "wipe_all", is_flag=True, help="Also delete every issuer record and index")
@click.confirmation_option(prompt="This resets indexing progress. Continue?")
@click.pass_obj
def reset_cmd(state: CliState, wipe_all: bool) -> None:
    """Reset the block cursor so the next backfill starts over."""

    async def main() -> None:
        async with open_services(state) as svc:
            await svc.progress.reset()
            removed = await svc.projector.clear() if wipe_all else 0
        console.print(f"[bold]reset[/]: cursor cleared, {removed} issuer keys removed")

    _run(main())


@cli.command("issuer")
@click.argument("address")
@click.pass_obj
def issuer_cmd(state: CliState, address: str) -> None:
    """Show one issuer by address."""

    async def main() -> None:
        async with open_services(state) as svc:
            record = await svc.queries.get_issuer(address)
        if record is None:
            raise click.ClickException(f"issuer {address} not found")
        table = Table(title=f"issuer {record.address}", show_header=False)
        table.add_column("field", style="bold")
        table.add_column("value")
        for k, v in record.to_hash().items():
            table.add_row(k, v)
        console.print(table)

    _run(main())


@cli.command("list")
@click.option("--status", type=click.Choice([s.value for s in IssuerStatus]), default=None)
@click.option("--limit", type=int, default=DEFAULT_LIMIT, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
@click.pass_obj
def list_cmd(state: CliState, status: str | None, limit: int, offset: int) -> None:
    """List issuers, optionally filtered by status."""

    async def main() -> None:
        async with open_services(state) as svc:
            try:
                if status is None:
                    page = await svc.queries.get_all_issuers(limit=limit, offset=offset)
                else:
                    page = await svc.queries.get_issuers_by_status(IssuerStatus(status), limit=limit, offset=offset)
            except ValueError as e:
                raise click.BadParameter(str(e)) from e
        title = f"{status or 'all'} issuers {offset + 1}-{offset + len(page.issuers)} of {page.total}"
        console.print(_issuer_table(page.issuers, title))

    _run(main())


@cli.command("health")
@click.pass_obj
def health_cmd(state: CliState) -> None:
    """Probe the store and the chain; exits non-zero when unhealthy."""

    async def main() -> str:
        async with open_services(state, require_store=False) as svc:
            report = await svc.queries.health()
        colors = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}
        console.print(f"[bold {colors[report.status]}]{report.status}[/]")
        for name, h in (("store", report.store), ("chain", report.chain)):
            mark = "[green]ok[/]" if h.healthy else f"[red]down[/] ({h.error})"
            console.print(f"  {name}: {mark} {h.response_ms:.1f}ms")
        if report.last_processed_block is not None:
            console.print(f"  last processed block: {report.last_processed_block:,}")
        if report.current_block is not None:
            console.print(f"  current block: {report.current_block:,}")
        if report.counts is not None:
            c = report.counts
            console.print(f"  issuers: {c.total} (pending={c.pending} approved={c.approved} rejected={c.rejected})")
        return report.status

    try:
        status = asyncio.run(main())
    except IndexerError as e:
        raise click.ClickException(str(e)) from e
    if status == "unhealthy":
        raise SystemExit(1)


@cli.command("export")
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--codec", default="zstd", show_default=True, help="Parquet compression codec")
@click.pass_obj
def export_cmd(state: CliState, out: Path, codec: str) -> None:
    """Write every issuer record to a Parquet file."""

    async def main() -> None:
        async with open_services(state) as svc:
            records = await svc.queries.list_all()
        rows = write_issuers_parquet(records, out, codec=codec)
        console.print(f"[bold]done[/]: {rows} issuers → {out}")

    _run(main())


if __name__ == "__main__":
    cli()
