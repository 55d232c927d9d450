import asyncio, signal
import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..adapters.parquet_sink import ParquetTradeSink
from ..adapters.sqlite_store import SqliteStore
from ..application.use_cases import build_client, discover_pairs, scrape_until
from ..config import ScraperConfig
from ..domain.errors import ScraperError
from ..domain.models import Asset, SwapRelation, Trade
from ..domain.value_types import Address, Blockchain
from ..log import configure_logging

console = Console()


def _asset(spec: str, blockchain: str) -> Asset:
    """SYMBOL:DECIMALS[:ADDRESS] -> Asset"""
    parts = spec.split(":")
    if len(parts) not in (2, 3) or not parts[1].isdigit():
        raise click.BadParameter(f"expected SYMBOL:DECIMALS[:ADDRESS], got {spec!r}")
    return Asset(symbol=parts[0], decimals=int(parts[1]),
                 address=Address(parts[2] if len(parts) == 3 else ""), blockchain=Blockchain(blockchain))


def _print_trade(t: Trade) -> None:
    side = "[red]sell[/]" if t.volume < 0 else "[green]buy[/]"
    console.print(f"{t.time:%Y-%m-%d %H:%M:%S} {t.pair:<14} {side} price={t.price:.8g} volume={t.volume:.8g} tx={t.foreign_trade_id}")


@click.group()
@click.option("--log-level", default="INFO", show_default=True)
@click.option("--json-logs/--no-json-logs", default=False, show_default=True)
@click.option("--exchange", default="Ayin", show_default=True, help="Exchange name; prefixes env settings")
@click.option("--blockchain", default="Alephium", show_default=True)
@click.option("--db", "db_path", default="alphswap.db", show_default=True, help="SQLite catalog/cursor database")
@click.pass_context
def cli(ctx, log_level, json_logs, exchange, blockchain, db_path):
    """alphswap: Alephium DEX swap scraper."""
    load_dotenv()
    configure_logging(log_level.upper(), json_output=json_logs)
    ctx.obj = {"exchange": exchange, "blockchain": blockchain, "db": db_path}


def _config(ctx) -> ScraperConfig:
    try:
        return ScraperConfig.from_env(ctx.obj["exchange"], ctx.obj["blockchain"])
    except ScraperError as e:
        raise click.ClickException(str(e))


@cli.command("scrape")
@click.option("--out-dir", type=str, default="", help="Write trades as Parquet shards instead of printing")
@click.option("--rows-per-shard", type=int, default=10_000, show_default=True)
@click.option("--duration", type=float, default=0, help="Stop after N seconds (0 = until Ctrl-C)")
@click.pass_context
def scrape_cmd(ctx, out_dir, rows_per_shard, duration):
    """Poll swap events of every catalogued pair and emit trades."""
    config = _config(ctx)

    async def run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass
        if duration > 0:
            loop.call_later(duration, stop.set)
        client = build_client(config)
        sink = ParquetTradeSink(out_dir, rows_per_shard=rows_per_shard) if out_dir else None
        try:
            async with SqliteStore(ctx.obj["db"]) as store:
                return await scrape_until(config=config, client=client, catalog=store, cursors=store,
                                          stop=stop, sink=sink, on_trade=_print_trade)
        finally:
            await client.aclose()

    res = asyncio.run(run())
    console.print(f"[bold]done[/]: {res['trades']} trades")
    if res["error"] is not None:
        raise click.ClickException(f"scraper stopped with error: {res['error']}")


@cli.command("pairs")
@click.pass_context
def pairs_cmd(ctx):
    """List pairs available on the exchange (needs <EXCHANGE>_FACTORY_ADDRESS)."""
    config = _config(ctx)

    async def run():
        client = build_client(config)
        try:
            return await discover_pairs(config, client)
        finally:
            await client.aclose()

    try:
        pairs = asyncio.run(run())
    except ScraperError as e:
        raise click.ClickException(str(e))
    table = Table("symbol", "foreign name", "exchange")
    for p in pairs:
        table.add_row(p.symbol, p.foreign_name, p.exchange)
    console.print(table)


@cli.group("catalog")
def catalog():
    """Manage tracked swap relations."""


@catalog.command("add")
@click.argument("contract")
@click.option("--asset0", required=True, help="SYMBOL:DECIMALS[:ADDRESS]")
@click.option("--asset1", required=True, help="SYMBOL:DECIMALS[:ADDRESS]")
@click.pass_context
def catalog_add(ctx, contract, asset0, asset1):
    bc = ctx.obj["blockchain"]
    rel = SwapRelation(Address(contract), _asset(asset0, bc), _asset(asset1, bc))

    async def run():
        async with SqliteStore(ctx.obj["db"]) as store:
            await store.add_swap_relation(Blockchain(bc), rel)

    asyncio.run(run())
    console.print(f"added {rel.asset0.symbol}-{rel.asset1.symbol} @ {contract}")


@catalog.command("list")
@click.pass_context
def catalog_list(ctx):
    async def run():
        async with SqliteStore(ctx.obj["db"]) as store:
            return await store.list_swap_relations(Blockchain(ctx.obj["blockchain"]))

    table = Table("contract", "asset0", "asset1")
    for r in asyncio.run(run()):
        table.add_row(r.parent_address, f"{r.asset0.symbol} ({r.asset0.decimals})", f"{r.asset1.symbol} ({r.asset1.decimals})")
    console.print(table)


@cli.command("cursor")
@click.argument("contract")
@click.pass_context
def cursor_show(ctx, contract):
    """Show the next page to fetch for CONTRACT."""
    async def run():
        async with SqliteStore(ctx.obj["db"]) as store:
            return await store.get_cursor(Address(contract), Blockchain(ctx.obj["blockchain"]))

    try:
        cur = asyncio.run(run())
    except ScraperError as e:
        raise click.ClickException(str(e))
    console.print(f"{cur.contract_address} on {cur.blockchain}: page {cur.page}")


if __name__ == "__main__":
    cli()
