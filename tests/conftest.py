"""
Pytest configuration and shared fixtures.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from alphswap.adapters.memory_store import InMemoryStore
from alphswap.config import ScraperConfig
from alphswap.domain.errors import FetchError
from alphswap.domain.models import Asset, EventField, RawSwapEvent, SwapRelation, TokenInfo, Trade
from alphswap.domain.value_types import Address, Blockchain, TxHash

BLOCKCHAIN = Blockchain("Alephium")
BASE_TS_MS = 1_700_000_000_000


def swap_event(tx: str, fields: list[str], contract: str | None = None) -> RawSwapEvent:
    return RawSwapEvent(
        tx_hash=TxHash(tx),
        fields=tuple(EventField("U256", v) for v in fields),
        contract_address=Address(contract) if contract else None,
    )


def sell_alph(tx: str, alph_raw: str = "1000000000000000000", usdt_raw: str = "2000000") -> RawSwapEvent:
    """asset0 (ALPH) in, asset1 (USDT) out."""
    return swap_event(tx, ["sender", alph_raw, "0", "0", usdt_raw, "to"])


class FakeClient:
    """Scriptable SwapEventsClient: events[contract][page] -> list of events."""

    def __init__(self, events=None, timestamps=None):
        self.events = events or {}
        self.timestamps = timestamps or {}
        self.fail_fetch: set[str] = set()
        self.fail_tx: set[str] = set()
        self.calls: list[tuple] = []
        self.pairs: dict[str, tuple[str, str]] = {}
        self.tokens: dict[str, TokenInfo] = {}
        self.closed = False

    async def fetch_events(self, contract_address, limit, page):
        self.calls.append(("events", contract_address, page))
        if contract_address in self.fail_fetch:
            raise FetchError(f"boom {contract_address}")
        return list(self.events.get(contract_address, {}).get(page, []))[:limit]

    async def fetch_transaction_timestamp(self, tx_hash):
        self.calls.append(("tx", tx_hash))
        if tx_hash in self.fail_tx:
            raise FetchError(f"no tx {tx_hash}")
        return self.timestamps.get(tx_hash, BASE_TS_MS)

    async def list_swap_contract_addresses(self, limit):
        return [Address(a) for a in list(self.pairs)[:limit]]

    async def list_token_pair_addresses(self, contract_address):
        t0, t1 = self.pairs[contract_address]
        return Address(t0), Address(t1)

    async def get_token_info(self, address, blockchain):
        try:
            return self.tokens[address]
        except KeyError:
            raise FetchError(f"unknown token {address}")

    async def aclose(self):
        self.closed = True


@pytest.fixture
def alph():
    return Asset(symbol="ALPH", decimals=18, address=Address("tgx7VNFoP9DJiFMFgXXtafQZkUvyEdDHT9ryamHJYrjq"))


@pytest.fixture
def usdt():
    return Asset(symbol="USDT", decimals=6, address=Address("zSRgc7goAYUgYsEBYdAzogyyeKv3ne3uvWb3VDtxnaEK"))


@pytest.fixture
def relation(alph, usdt):
    return SwapRelation(parent_address=Address("pool-alph-usdt"), asset0=alph, asset1=usdt)


@pytest.fixture
def make_relation(alph, usdt):
    def _build(addr: str) -> SwapRelation:
        return SwapRelation(parent_address=Address(addr), asset0=alph, asset1=usdt)
    return _build


@pytest.fixture
def make_trade(alph, usdt):
    def _build(tx: str = "tx", price: float = 2.0, volume: float = -1.0) -> Trade:
        return Trade(
            time=datetime(2023, 11, 14, tzinfo=timezone.utc),
            symbol="ALPH-USDT",
            pair="ALPH-USDT",
            price=price,
            volume=volume,
            foreign_trade_id=tx,
            source="Ayin",
            base_token=alph,
            quote_token=usdt,
        )
    return _build


@pytest.fixture
def config():
    return ScraperConfig(
        exchange_name="Ayin",
        blockchain=BLOCKCHAIN,
        refresh_delay=0.01,
        sleep_between_contract_calls=0,
        events_limit=10,
        channel_capacity=100,
    )


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def store():
    return InMemoryStore()


async def wait_until(pred, timeout: float = 2.0, step: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not pred():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(step)
