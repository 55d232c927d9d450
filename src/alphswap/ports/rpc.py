from __future__ import annotations

from typing import Protocol
from ..domain.models import RawSwapEvent, TokenInfo
from ..domain.value_types import Address, Blockchain, TxHash


class SwapEventsClient(Protocol):
    """Port for the chain/explorer client the scraper polls."""

    async def fetch_events(self, contract_address: Address, limit: int, page: int) -> list[RawSwapEvent]:
        """Return up to `limit` swap events of the contract at 1-based `page`, oldest first."""

    async def fetch_transaction_timestamp(self, tx_hash: TxHash) -> int:
        """Return the block timestamp (unix ms) of the transaction."""

    async def list_swap_contract_addresses(self, limit: int) -> list[Address]:
        """Return up to `limit` pair contracts created by the DEX factory."""

    async def list_token_pair_addresses(self, contract_address: Address) -> tuple[Address, Address]:
        """Return (token0, token1) of a pair contract."""

    async def get_token_info(self, address: Address, blockchain: Blockchain) -> TokenInfo:
        """Return symbol/decimals metadata of a token."""

    async def aclose(self) -> None:
        """Release network resources."""
