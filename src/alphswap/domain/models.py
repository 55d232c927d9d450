from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from .value_types import Address, Blockchain, TxHash

@dataclass(slots=True, frozen=True)
class Asset:
    symbol: str
    decimals: int
    address: Address = Address("")
    name: str = ""
    blockchain: Blockchain = Blockchain("Alephium")

@dataclass(slots=True, frozen=True)
class SwapRelation:
    parent_address: Address   # the pair/pool contract emitting swaps
    asset0: Asset
    asset1: Asset

@dataclass(slots=True, frozen=True)
class PollingCursor:
    blockchain: Blockchain
    contract_address: Address
    page: int = 1
    def next(self) -> "PollingCursor": return replace(self, page=self.page + 1)

@dataclass(slots=True, frozen=True)
class EventField:
    type: str
    value: str

@dataclass(slots=True, frozen=True)
class RawSwapEvent:
    tx_hash: TxHash
    fields: tuple[EventField, ...]
    contract_address: Address | None = None
    event_index: int | None = None

@dataclass(slots=True, frozen=True)
class Trade:
    time: datetime
    symbol: str
    pair: str
    price: float
    volume: float             # signed; negative = base asset leaving the pool
    foreign_trade_id: str     # tx hash
    source: str               # exchange name
    base_token: Asset
    quote_token: Asset
    verified_pair: bool = True

@dataclass(slots=True, frozen=True)
class ExchangePair:
    symbol: str
    foreign_name: str
    exchange: str

@dataclass(slots=True, frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    address: Address
    name: str = ""
    def to_asset(self, blockchain: Blockchain) -> Asset:
        return Asset(symbol=self.symbol, decimals=self.decimals, address=self.address,
                     name=self.name, blockchain=blockchain)

@dataclass(slots=True, frozen=True)
class TerminalState:
    closed: bool = True
    error: BaseException | None = field(default=None, compare=False)
