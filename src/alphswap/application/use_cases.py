from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable

from ..adapters.memory_store import InMemoryStore
from ..adapters.rpc_httpx import HttpxAlephiumClient
from ..config import ScraperConfig
from ..domain.models import ExchangePair, Trade
from ..ports.rpc import SwapEventsClient
from ..ports.storage import CursorStore, SwapRelationCatalog, TradeSink
from .channel import TradeChannel
from .scraper import SwapScraper

log = logging.getLogger(__name__)

TradeCallback = Callable[[Trade], None]


def build_client(config: ScraperConfig) -> HttpxAlephiumClient:
    return HttpxAlephiumClient(
        config.explorer_url,
        config.node_url,
        factory_address=config.factory_address,
        debug=config.debug,
    )


async def _consume(channel: TradeChannel, on_trade: TradeCallback) -> int:
    n = 0
    async for trade in channel:
        on_trade(trade)
        n += 1
    return n


async def _consume_into(sink: TradeSink, channel: TradeChannel) -> int:
    n = 0
    async for trade in channel:
        await sink.write_trades([trade])
        n += 1
    return n


async def scrape_until(
    *,
    config: ScraperConfig,
    client: SwapEventsClient,
    catalog: SwapRelationCatalog,
    cursors: CursorStore,
    stop: asyncio.Event,
    sink: TradeSink | None = None,
    on_trade: TradeCallback | None = None,
) -> dict[str, object]:
    """
    Run a scraper in the background until `stop` is set, feeding its trades to
    `sink` (batched when it has a `drain` coroutine) or `on_trade`, then close it.
    """
    scraper = SwapScraper(config, client, catalog, cursors, scrape=True)
    if sink is not None:
        drain: Callable[[TradeChannel], Awaitable[int]] = getattr(sink, "drain", None) or (
            lambda ch: _consume_into(sink, ch))
        consumer = asyncio.create_task(drain(scraper.channel))
    else:
        consumer = asyncio.create_task(_consume(scraper.channel, on_trade or (lambda t: None)))

    stopper = asyncio.create_task(stop.wait())
    done, _ = await asyncio.wait({stopper, consumer}, return_when=asyncio.FIRST_COMPLETED)
    if consumer in done and consumer.exception() is not None:
        # consumer died: nobody receives trades any more
        stopper.cancel()
        await scraper.channel.close()   # unblocks a publish waiting for a receiver
        if not scraper.closed:
            await scraper.close()
        raise consumer.exception()  # type: ignore[misc]

    stopper.cancel()
    # a fatally failed scraper has already closed itself (and its channel)
    err = scraper.error if scraper.closed else await scraper.close()
    trades = await consumer
    if err is not None:
        log.error("scraper closed with error", extra={"error": repr(err)})
    return {"trades": trades, "error": err}


async def discover_pairs(config: ScraperConfig, client: SwapEventsClient) -> list[ExchangePair]:
    # discovery touches neither catalog nor cursors
    store = InMemoryStore()
    scraper = SwapScraper(config, client, store, store)
    return await scraper.fetch_available_pairs()

