"""
Tests for the scrape/discover wiring.
"""

import asyncio
from dataclasses import replace

import pyarrow.parquet as pq
import pytest

from alphswap.adapters.parquet_sink import ParquetTradeSink
from alphswap.application.use_cases import discover_pairs, scrape_until
from alphswap.domain.errors import FetchError
from alphswap.domain.models import TokenInfo
from alphswap.domain.value_types import Address

from conftest import BLOCKCHAIN, FakeClient, sell_alph, wait_until


@pytest.mark.asyncio
async def test_scrape_until_feeds_callback(config, store, relation):
    store.add_relation(BLOCKCHAIN, relation)
    addr = relation.parent_address
    client = FakeClient(events={addr: {1: [sell_alph("t1"), sell_alph("t2")]}})
    seen = []
    stop = asyncio.Event()

    run = asyncio.create_task(scrape_until(config=config, client=client, catalog=store, cursors=store,
                                           stop=stop, on_trade=seen.append))
    await wait_until(lambda: len(seen) == 2)
    stop.set()
    res = await asyncio.wait_for(run, 2)

    assert res == {"trades": 2, "error": None}
    assert [t.foreign_trade_id for t in seen] == ["t1", "t2"]


@pytest.mark.asyncio
async def test_scrape_until_writes_parquet(tmp_path, config, store, relation):
    store.add_relation(BLOCKCHAIN, relation)
    addr = relation.parent_address
    client = FakeClient(events={addr: {1: [sell_alph("t1")]}})
    stop = asyncio.Event()
    sink = ParquetTradeSink(str(tmp_path))

    run = asyncio.create_task(scrape_until(config=config, client=client, catalog=store, cursors=store,
                                           stop=stop, sink=sink))
    await wait_until(lambda: any(c == ("events", addr, 2) for c in client.calls))
    stop.set()
    res = await asyncio.wait_for(run, 2)

    assert res["trades"] == 1
    assert pq.read_table(sink.written[0]).column("foreign_trade_id").to_pylist() == ["t1"]


@pytest.mark.asyncio
async def test_scrape_until_reports_fatal_error(config, store, relation):
    store.add_relation(BLOCKCHAIN, relation)
    client = FakeClient()
    client.fail_fetch.add(relation.parent_address)

    res = await asyncio.wait_for(
        scrape_until(config=replace(config, max_consecutive_failures=1), client=client,
                     catalog=store, cursors=store, stop=asyncio.Event()),
        2,
    )

    assert res["trades"] == 0
    assert isinstance(res["error"], FetchError)


@pytest.mark.asyncio
async def test_scrape_until_propagates_consumer_failure(config, store, relation):
    store.add_relation(BLOCKCHAIN, relation)
    addr = relation.parent_address
    client = FakeClient(events={addr: {1: [sell_alph("t1")]}})

    def explode(trade):
        raise RuntimeError("consumer broke")

    with pytest.raises(RuntimeError, match="consumer broke"):
        await asyncio.wait_for(
            scrape_until(config=config, client=client, catalog=store, cursors=store,
                         stop=asyncio.Event(), on_trade=explode),
            2,
        )


@pytest.mark.asyncio
async def test_discover_pairs_skips_unresolvable_contracts(config):
    client = FakeClient()
    client.pairs = {"p1": ("alph", "usdt"), "p2": ("alph", "missing"), "p3": ("ayin", "alph")}
    client.tokens = {
        "alph": TokenInfo("ALPH", 18, Address("alph")),
        "usdt": TokenInfo("USDT", 6, Address("usdt")),
        "ayin": TokenInfo("AYIN", 18, Address("ayin")),
    }

    pairs = await discover_pairs(config, client)

    assert [(p.symbol, p.foreign_name, p.exchange) for p in pairs] == [
        ("ALPH", "ALPH-USDT", "Ayin"),
        ("AYIN", "AYIN-ALPH", "Ayin"),
    ]


@pytest.mark.asyncio
async def test_discover_pairs_respects_limit(config):
    client = FakeClient()
    client.pairs = {f"p{i}": ("alph", "alph") for i in range(5)}
    client.tokens = {"alph": TokenInfo("ALPH", 18, Address("alph"))}

    pairs = await discover_pairs(replace(config, swap_contracts_limit=2), client)

    assert len(pairs) == 2
