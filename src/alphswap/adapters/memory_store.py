from __future__ import annotations

import asyncio
from typing import Iterable

from ..domain.errors import CursorRegressionError, StorageError
from ..domain.models import PollingCursor, SwapRelation
from ..domain.value_types import Address, Blockchain
from ..ports.storage import CursorStore, SwapRelationCatalog


class InMemoryStore(SwapRelationCatalog, CursorStore):
    """Dict-backed catalog + cursor store; insertion order is catalog order."""

    def __init__(self, relations: Iterable[tuple[Blockchain, SwapRelation]] = ()) -> None:
        self._relations: dict[Blockchain, list[SwapRelation]] = {}
        self._cursors: dict[tuple[Address, Blockchain], PollingCursor] = {}
        self._lock = asyncio.Lock()
        for bc, rel in relations:
            self.add_relation(bc, rel)

    def add_relation(self, blockchain: Blockchain, relation: SwapRelation) -> None:
        self._relations.setdefault(blockchain, []).append(relation)

    async def list_swap_relations(self, blockchain: Blockchain) -> list[SwapRelation]:
        return list(self._relations.get(blockchain, []))

    async def ensure_cursor(self, cursor: PollingCursor) -> None:
        async with self._lock:
            self._cursors.setdefault((cursor.contract_address, cursor.blockchain), cursor)

    async def get_cursor(self, contract_address: Address, blockchain: Blockchain) -> PollingCursor:
        try:
            return self._cursors[(contract_address, blockchain)]
        except KeyError as e:
            raise StorageError(f"no polling cursor for {contract_address} on {blockchain}", e) from e

    async def advance_cursor(self, contract_address: Address, blockchain: Blockchain, page: int) -> None:
        async with self._lock:
            cur = await self.get_cursor(contract_address, blockchain)
            if page < cur.page:
                raise CursorRegressionError(f"cursor for {contract_address} at page {cur.page}, refusing {page}")
            self._cursors[(contract_address, blockchain)] = PollingCursor(blockchain, contract_address, page)
