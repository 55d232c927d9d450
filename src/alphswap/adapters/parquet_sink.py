from __future__ import annotations
import glob, logging, os, pyarrow as pa, pyarrow.parquet as pq
from typing import Iterable

from ..application.channel import TradeChannel
from ..domain.models import Trade
from ..ports.storage import TradeSink

log = logging.getLogger(__name__)

TRADE_SCHEMA = pa.schema([
    pa.field("time",             pa.timestamp("ms", tz="UTC")),
    pa.field("symbol",           pa.large_string()),
    pa.field("pair",             pa.large_string()),
    pa.field("price",            pa.float64()),
    pa.field("volume",           pa.float64()),
    pa.field("foreign_trade_id", pa.large_string()),
    pa.field("source",           pa.large_string()),
    pa.field("base_token",       pa.large_string()),
    pa.field("base_address",     pa.large_string()),
    pa.field("quote_token",      pa.large_string()),
    pa.field("quote_address",    pa.large_string()),
    pa.field("verified_pair",    pa.bool_()),
])

def _trades_to_table(trades: Iterable[Trade]) -> pa.Table:
    ts = list(trades)
    return pa.Table.from_pydict({
        "time":             [t.time for t in ts],
        "symbol":           [t.symbol for t in ts],
        "pair":             [t.pair for t in ts],
        "price":            [t.price for t in ts],
        "volume":           [t.volume for t in ts],
        "foreign_trade_id": [t.foreign_trade_id for t in ts],
        "source":           [t.source for t in ts],
        "base_token":       [t.base_token.symbol for t in ts],
        "base_address":     [t.base_token.address for t in ts],
        "quote_token":      [t.quote_token.symbol for t in ts],
        "quote_address":    [t.quote_token.address for t in ts],
        "verified_pair":    [t.verified_pair for t in ts],
    }, schema=TRADE_SCHEMA)


class ParquetTradeSink(TradeSink):
    """
    Writes trades to shards/shard_NNNNN.parquet, sorted by time then tx hash.
    Shard numbering continues after the last shard already on disk.
    """
    def __init__(self, out_dir: str, rows_per_shard: int = 10_000, codec: str = "zstd") -> None:
        self.out_dir = out_dir
        self.shards_dir = os.path.join(out_dir, "shards")
        os.makedirs(self.shards_dir, exist_ok=True)
        self.rows_per_shard = rows_per_shard
        self.codec = codec
        self.written: list[str] = []

    def next_shard_index(self) -> int:
        existing = sorted(glob.glob(os.path.join(self.shards_dir, "shard_*.parquet")))
        if not existing:
            return 1
        last = os.path.basename(existing[-1]).split("_")[1].split(".")[0]
        return int(last) + 1

    async def write_trades(self, trades: Iterable[Trade]) -> None:
        table = _trades_to_table(trades)
        if len(table) == 0:
            return
        table = table.sort_by([("time", "ascending"), ("foreign_trade_id", "ascending")])
        path = os.path.join(self.shards_dir, f"shard_{self.next_shard_index():05d}.parquet")
        tmp = path + ".tmp"
        pq.write_table(table, tmp, compression=self.codec)
        os.replace(tmp, path)
        self.written.append(path)
        log.info("wrote trade shard", extra={"path": path, "rows": len(table)})

    async def drain(self, channel: TradeChannel) -> int:
        """Consume `channel` until it closes; returns the number of trades written."""
        buf: list[Trade] = []
        total = 0
        async for trade in channel:
            buf.append(trade)
            if len(buf) >= self.rows_per_shard:
                await self.write_trades(buf)
                total += len(buf)
                buf = []
        if buf:
            await self.write_trades(buf)
            total += len(buf)
        return total
