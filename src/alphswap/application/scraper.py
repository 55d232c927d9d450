from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..config import ScraperConfig
from ..domain.decoding import decode_swap
from ..domain.errors import AlreadyClosedError, ChannelFullError, DecodeError
from ..domain.models import Asset, ExchangePair, PollingCursor, RawSwapEvent, SwapRelation
from ..ports.rpc import SwapEventsClient
from ..ports.storage import CursorStore, SwapRelationCatalog
from .channel import TradeChannel
from .cursor import CursorProtocol
from .lifecycle import TerminalCell
from .registry import PairHandle, PairRegistry

log = logging.getLogger(__name__)


@dataclass(slots=True)
class UpdateStats:
    relations: int = 0
    events: int = 0
    trades: int = 0
    skipped: int = 0


class SwapScraper:
    """
    Polls swap events of every tracked pair contract and publishes Trades.

    One background task (see start()) alternates between a refresh-delay timer
    and update(); everything inside a cycle runs sequentially in that task.
    close() is observed between cycles only.
    """

    def __init__(
        self,
        config: ScraperConfig,
        client: SwapEventsClient,
        catalog: SwapRelationCatalog,
        cursors: CursorStore,
        *,
        channel: TradeChannel | None = None,
        scrape: bool = False,
    ) -> None:
        self.config = config
        self.client = client
        self.catalog = catalog
        self.cursor = CursorProtocol(cursors, config.blockchain)
        self.channel = channel or TradeChannel(config.channel_capacity, config.channel_policy)
        self._terminal = TerminalCell()
        self.pairs = PairRegistry(self._terminal)
        self._shutdown = asyncio.Event()
        self._shutdown_done = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._timer: asyncio.Future[None] | None = None
        self._stop_waiter: asyncio.Future[bool] | None = None
        self._consecutive_failures = 0
        if scrape:
            self.start()

    # ------------------------------------------------------------------ state

    @property
    def closed(self) -> bool:
        return self._terminal.closed

    @property
    def error(self) -> BaseException | None:
        return self._terminal.error

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------- lifecycle

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("scraper already started")
        if self._terminal.closed or self._shutdown.is_set():
            raise AlreadyClosedError("cannot start a closed scraper")
        self._task = asyncio.get_running_loop().create_task(
            self._main_loop(), name=f"{self.config.exchange_name}-scraper"
        )

    async def _main_loop(self) -> None:
        try:
            fatal = await self._run_update()
            while fatal is None:
                self._timer = asyncio.ensure_future(asyncio.sleep(self.config.refresh_delay))
                self._stop_waiter = asyncio.ensure_future(self._shutdown.wait())
                done, _ = await asyncio.wait({self._timer, self._stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if self._stop_waiter in done:
                    log.info("shutting down", extra={"exchange": self.config.exchange_name})
                    break
                self._stop_waiter.cancel()
                fatal = await self._run_update()
            await self._cleanup(fatal)
        except asyncio.CancelledError:
            await self._cleanup(None)
            raise

    async def _run_update(self) -> BaseException | None:
        """Run one cycle; return an error only when it should close the scraper."""
        try:
            stats = await self.update()
        except Exception as e:
            self._consecutive_failures += 1
            log.error("update failed", exc_info=True,
                      extra={"exchange": self.config.exchange_name, "failures": self._consecutive_failures})
            limit = self.config.max_consecutive_failures
            if limit and self._consecutive_failures >= limit:
                log.error("too many consecutive update failures, closing scraper",
                          extra={"exchange": self.config.exchange_name, "limit": limit})
                return e
            return None
        self._consecutive_failures = 0
        log.debug("update done", extra={"relations": stats.relations, "events": stats.events,
                                        "trades": stats.trades, "skipped": stats.skipped})
        return None

    async def _cleanup(self, err: BaseException | None) -> None:
        # must only run from the main loop (or inline for a never-started scraper)
        for fut in (self._timer, self._stop_waiter):
            if fut is not None:
                fut.cancel()
        if not self._terminal.closed:
            self._terminal.publish(err)
        await self.channel.close()
        self._shutdown_done.set()

    async def close(self) -> BaseException | None:
        """Request shutdown, wait for it and return the stored error (if any)."""
        if self._shutdown.is_set() or self._terminal.closed:
            raise AlreadyClosedError(f"{self.config.exchange_name} scraper already closed")
        self._shutdown.set()
        if self._task is None:
            await self._cleanup(None)
        else:
            await self._shutdown_done.wait()
        return self._terminal.error

    # ---------------------------------------------------------------- pairs

    def scrape_pair(self, pair: ExchangePair) -> PairHandle:
        return self.pairs.register(pair)

    def fill_symbol_data(self, symbol: str) -> Asset:
        return Asset(symbol=symbol, decimals=0, blockchain=self.config.blockchain)

    def normalize_pair(self, pair: ExchangePair) -> ExchangePair:
        return pair

    async def fetch_available_pairs(self) -> list[ExchangePair]:
        """Discover pairs from the DEX factory's sub-contracts."""
        addresses = await self.client.list_swap_contract_addresses(self.config.swap_contracts_limit)
        pairs: list[ExchangePair] = []
        for addr in addresses:
            try:
                t0, t1 = await self.client.list_token_pair_addresses(addr)
                token0 = await self.client.get_token_info(t0, self.config.blockchain)
                token1 = await self.client.get_token_info(t1, self.config.blockchain)
            except Exception:
                log.error("failed to resolve token pair", exc_info=True, extra={"contract": addr})
                continue
            pairs.append(ExchangePair(
                symbol=token0.symbol,
                foreign_name=f"{token0.symbol}-{token1.symbol}",
                exchange=self.config.exchange_name,
            ))
            await self._pace()
        return pairs

    # ---------------------------------------------------------------- update

    async def _relations(self) -> list[SwapRelation]:
        rows = await self.catalog.list_swap_relations(self.config.blockchain)
        target = self.config.target_swap_contract
        if not target:
            return rows
        match = next((r for r in rows if r.parent_address == target), None)
        if match is None:
            log.warning("target swap contract not in catalog", extra={"contract": target})
            return []
        return [match]

    async def _pace(self) -> None:
        await asyncio.sleep(self.config.sleep_between_contract_calls)

    async def update(self) -> UpdateStats:
        """
        One polling pass over all relations.

        Raises on catalog, event-fetch and cursor-advance failures (the pass is
        abandoned); cursor setup, transaction lookup and decode failures only
        skip the relation or event.
        """
        stats = UpdateStats()
        relations = await self._relations()
        for rel in relations:
            addr = rel.parent_address
            try:
                cursor = await self.cursor.acquire(addr)
            except Exception:
                log.error("failed to set up polling cursor", exc_info=True, extra={"contract": addr})
                continue

            events = await self.client.fetch_events(addr, self.config.events_limit, cursor.page)
            stats.relations += 1
            if not events:
                log.info("empty events, skip to next contract", extra={"contract": addr, "page": cursor.page})
                continue

            stats.events += len(events)
            for event in events:
                if await self._handle_event(rel, event, cursor):
                    stats.trades += 1
                else:
                    stats.skipped += 1

            # after the whole batch went out: a re-fetch after a crash re-publishes
            await self.cursor.advance(cursor)
            await self._pace()
        return stats

    async def _handle_event(self, rel: SwapRelation, event: RawSwapEvent, cursor: PollingCursor) -> bool:
        try:
            timestamp = await self.client.fetch_transaction_timestamp(event.tx_hash)
        except Exception:
            log.error("failed to fetch transaction details", exc_info=True,
                      extra={"tx_hash": event.tx_hash, "page": cursor.page})
            return False
        try:
            trade = decode_swap(event, rel, timestamp, self.config.exchange_name)
        except DecodeError as e:
            log.warning("skipping undecodable swap event", extra={"tx_hash": event.tx_hash, "reason": str(e)})
            return False
        log.debug("trade", extra={"pair": trade.pair, "price": trade.price,
                                  "volume": trade.volume, "tx_hash": trade.foreign_trade_id})
        try:
            await self.channel.publish(trade)
        except ChannelFullError:
            log.warning("trade channel full, trade rejected", extra={"tx_hash": event.tx_hash})
            return False
        return True
