from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from ..domain.errors import CursorRegressionError, StorageError
from ..domain.models import Asset, PollingCursor, SwapRelation
from ..domain.value_types import Address, Blockchain
from ..ports.storage import CursorStore, SwapRelationCatalog

_SCHEMA = """
CREATE TABLE IF NOT EXISTS swap_relations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    blockchain      TEXT NOT NULL,
    parent_address  TEXT NOT NULL,
    asset0_symbol   TEXT NOT NULL,
    asset0_decimals INTEGER NOT NULL,
    asset0_address  TEXT NOT NULL DEFAULT '',
    asset1_symbol   TEXT NOT NULL,
    asset1_decimals INTEGER NOT NULL,
    asset1_address  TEXT NOT NULL DEFAULT '',
    UNIQUE (blockchain, parent_address)
);
CREATE TABLE IF NOT EXISTS pollings (
    blockchain       TEXT NOT NULL,
    contract_address TEXT NOT NULL,
    page             INTEGER NOT NULL,
    PRIMARY KEY (contract_address, blockchain)
);
"""


class SqliteStore(SwapRelationCatalog, CursorStore):
    """aiosqlite-backed swap relation catalog and polling cursor store."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> "SqliteStore":
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("SqliteStore used before init()")
        return self._conn

    # -- catalog ---------------------------------------------------------------

    async def add_swap_relation(self, blockchain: Blockchain, rel: SwapRelation) -> None:
        try:
            async with self._lock:
                await self.conn.execute(
                    """
                    INSERT INTO swap_relations (
                        blockchain, parent_address,
                        asset0_symbol, asset0_decimals, asset0_address,
                        asset1_symbol, asset1_decimals, asset1_address
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (blockchain, parent_address) DO UPDATE SET
                        asset0_symbol = excluded.asset0_symbol,
                        asset0_decimals = excluded.asset0_decimals,
                        asset0_address = excluded.asset0_address,
                        asset1_symbol = excluded.asset1_symbol,
                        asset1_decimals = excluded.asset1_decimals,
                        asset1_address = excluded.asset1_address
                    """,
                    (blockchain, rel.parent_address,
                     rel.asset0.symbol, rel.asset0.decimals, rel.asset0.address,
                     rel.asset1.symbol, rel.asset1.decimals, rel.asset1.address),
                )
                await self.conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to store swap relation {rel.parent_address}", e) from e

    async def list_swap_relations(self, blockchain: Blockchain) -> list[SwapRelation]:
        try:
            async with self.conn.execute(
                "SELECT * FROM swap_relations WHERE blockchain = ? ORDER BY id", (blockchain,)
            ) as cur:
                rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to list swap relations for {blockchain}", e) from e
        return [
            SwapRelation(
                parent_address=Address(r["parent_address"]),
                asset0=Asset(symbol=r["asset0_symbol"], decimals=r["asset0_decimals"],
                             address=Address(r["asset0_address"]), blockchain=blockchain),
                asset1=Asset(symbol=r["asset1_symbol"], decimals=r["asset1_decimals"],
                             address=Address(r["asset1_address"]), blockchain=blockchain),
            )
            for r in rows
        ]

    # -- cursors ---------------------------------------------------------------

    async def ensure_cursor(self, cursor: PollingCursor) -> None:
        try:
            async with self._lock:
                await self.conn.execute(
                    "INSERT OR IGNORE INTO pollings (blockchain, contract_address, page) VALUES (?, ?, ?)",
                    (cursor.blockchain, cursor.contract_address, cursor.page),
                )
                await self.conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to create cursor for {cursor.contract_address}", e) from e

    async def get_cursor(self, contract_address: Address, blockchain: Blockchain) -> PollingCursor:
        try:
            async with self.conn.execute(
                "SELECT page FROM pollings WHERE contract_address = ? AND blockchain = ?",
                (contract_address, blockchain),
            ) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"failed to read cursor for {contract_address}", e) from e
        if row is None:
            raise StorageError(f"no polling cursor for {contract_address} on {blockchain}")
        return PollingCursor(blockchain, contract_address, int(row["page"]))

    async def advance_cursor(self, contract_address: Address, blockchain: Blockchain, page: int) -> None:
        async with self._lock:
            current = await self.get_cursor(contract_address, blockchain)
            if page < current.page:
                raise CursorRegressionError(
                    f"cursor for {contract_address} at page {current.page}, refusing {page}"
                )
            try:
                await self.conn.execute(
                    "UPDATE pollings SET page = ? WHERE contract_address = ? AND blockchain = ?",
                    (page, contract_address, blockchain),
                )
                await self.conn.commit()
            except aiosqlite.Error as e:
                raise StorageError(f"failed to advance cursor for {contract_address}", e) from e
