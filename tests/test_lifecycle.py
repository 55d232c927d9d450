"""
Tests for the scraper's background loop, shutdown and terminal error state.
"""

import asyncio
from dataclasses import replace

import pytest

from alphswap.application.channel import TradeChannel
from alphswap.application.scraper import SwapScraper
from alphswap.domain.errors import AlreadyClosedError, ClosedError, FetchError
from alphswap.domain.models import ExchangePair

from conftest import BLOCKCHAIN, FakeClient, sell_alph, wait_until

PAIR = ExchangePair(symbol="ALPH", foreign_name="ALPH-USDT", exchange="Ayin")


@pytest.fixture
def tracked(store, relation):
    store.add_relation(BLOCKCHAIN, relation)
    return store


@pytest.mark.asyncio
async def test_running_scraper_streams_trades_until_closed(config, tracked, relation):
    addr = relation.parent_address
    client = FakeClient(events={addr: {1: [sell_alph("t1")], 2: [sell_alph("t2")]}})
    scraper = SwapScraper(config, client, tracked, tracked, channel=TradeChannel(), scrape=True)
    assert scraper.running

    got = [await asyncio.wait_for(scraper.channel.receive(), 1) for _ in range(2)]
    assert [t.foreign_trade_id for t in got] == ["t1", "t2"]

    assert await asyncio.wait_for(scraper.close(), 1) is None
    assert scraper.closed
    assert not scraper.running
    assert scraper.channel.closed
    assert [t async for t in scraper.channel] == []


@pytest.mark.asyncio
async def test_close_twice_raises(config, tracked, client):
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)
    assert await scraper.close() is None
    with pytest.raises(AlreadyClosedError):
        await scraper.close()


@pytest.mark.asyncio
async def test_close_never_started_scraper(config, tracked, client):
    scraper = SwapScraper(config, client, tracked, tracked)
    assert await scraper.close() is None
    assert scraper.closed
    with pytest.raises(AlreadyClosedError):
        await scraper.close()
    with pytest.raises(AlreadyClosedError):
        scraper.start()


@pytest.mark.asyncio
async def test_start_twice_raises(config, tracked, client):
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)
    with pytest.raises(RuntimeError):
        scraper.start()
    await scraper.close()


@pytest.mark.asyncio
async def test_scrape_pair_after_close_raises_closed_error(config, tracked, client):
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)
    handle = scraper.scrape_pair(PAIR)
    await scraper.close()

    with pytest.raises(ClosedError):
        scraper.scrape_pair(PAIR)
    assert handle.error() is None


@pytest.mark.asyncio
async def test_update_errors_are_not_fatal_by_default(config, tracked, relation):
    client = FakeClient()
    client.fail_fetch.add(relation.parent_address)
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)

    await wait_until(lambda: len(client.calls) >= 3)
    assert scraper.running
    assert not scraper.closed
    assert await scraper.close() is None


@pytest.mark.asyncio
async def test_consecutive_failures_close_scraper_with_error(config, tracked, relation):
    client = FakeClient()
    client.fail_fetch.add(relation.parent_address)
    scraper = SwapScraper(replace(config, max_consecutive_failures=2), client, tracked, tracked)
    handle = scraper.scrape_pair(PAIR)
    scraper.start()

    await wait_until(lambda: scraper.closed)
    assert isinstance(scraper.error, FetchError)
    assert handle.error() is scraper.error
    assert scraper.channel.closed
    with pytest.raises(FetchError):
        scraper.scrape_pair(PAIR)
    with pytest.raises(AlreadyClosedError):
        await scraper.close()
    assert len([c for c in client.calls if c[0] == "events"]) == 2


@pytest.mark.asyncio
async def test_success_resets_failure_count(config, tracked, relation):
    addr = relation.parent_address
    client = FakeClient()
    scraper = SwapScraper(replace(config, max_consecutive_failures=2), client, tracked, tracked)

    outcomes = [True, False, True, False, True]   # True = fetch fails
    for fail in outcomes:
        if fail:
            client.fail_fetch.add(addr)
        else:
            client.fail_fetch.discard(addr)
        assert await scraper._run_update() is None
    client.fail_fetch.add(addr)
    assert isinstance(await scraper._run_update(), FetchError)


@pytest.mark.asyncio
async def test_shutdown_waits_for_running_cycle(config, tracked, relation):
    gate = asyncio.Event()
    entered = asyncio.Event()

    class SlowClient(FakeClient):
        async def fetch_events(self, contract_address, limit, page):
            entered.set()
            await gate.wait()
            return await super().fetch_events(contract_address, limit, page)

    client = SlowClient()
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)
    await asyncio.wait_for(entered.wait(), 1)

    closing = asyncio.create_task(scraper.close())
    await asyncio.sleep(0.05)
    assert not closing.done()
    assert not scraper.closed

    gate.set()
    assert await asyncio.wait_for(closing, 1) is None
    # no new cycle started once shutdown was requested
    assert len([c for c in client.calls if c[0] == "events"]) == 1


@pytest.mark.asyncio
async def test_cancelled_loop_still_publishes_terminal_state(config, tracked, client):
    scraper = SwapScraper(config, client, tracked, tracked, scrape=True)
    await asyncio.sleep(0.02)
    scraper._task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await scraper._task
    assert scraper.closed
    assert scraper.error is None
