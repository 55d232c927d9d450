from __future__ import annotations

from typing import Iterable, Protocol
from ..domain.models import PollingCursor, SwapRelation, Trade
from ..domain.value_types import Address, Blockchain


class SwapRelationCatalog(Protocol):
    """Port listing the pair contracts worth scraping."""

    async def list_swap_relations(self, blockchain: Blockchain) -> list[SwapRelation]:
        """Return trackable relations in a stable order."""


class CursorStore(Protocol):
    """Port persisting one page cursor per (contract, blockchain)."""

    async def ensure_cursor(self, cursor: PollingCursor) -> None:
        """Insert the cursor if absent; never touch an existing row."""

    async def get_cursor(self, contract_address: Address, blockchain: Blockchain) -> PollingCursor:
        """Return the stored cursor; StorageError if missing."""

    async def advance_cursor(self, contract_address: Address, blockchain: Blockchain, page: int) -> None:
        """Persist `page`; CursorRegressionError if lower than the stored one."""


class TradeSink(Protocol):
    """Port for writing a batch of trades to durable storage (e.g., Parquet)."""

    async def write_trades(self, trades: Iterable[Trade]) -> None:
        """Persist the given trades."""
