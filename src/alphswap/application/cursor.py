from __future__ import annotations

from ..domain.models import PollingCursor
from ..domain.value_types import Address, Blockchain
from ..ports.storage import CursorStore


class CursorProtocol:
    """Establishes and advances the per-contract page cursor against a CursorStore."""

    def __init__(self, store: CursorStore, blockchain: Blockchain) -> None:
        self.store = store
        self.blockchain = blockchain

    async def acquire(self, contract_address: Address) -> PollingCursor:
        # ensure is insert-if-absent; the re-read is what we page from
        await self.store.ensure_cursor(PollingCursor(self.blockchain, contract_address, 1))
        return await self.store.get_cursor(contract_address, self.blockchain)

    async def advance(self, cursor: PollingCursor) -> PollingCursor:
        nxt = cursor.next()
        await self.store.advance_cursor(nxt.contract_address, nxt.blockchain, nxt.page)
        return nxt
