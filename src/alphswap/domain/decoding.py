from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from .errors import DecodeError
from .models import Asset, RawSwapEvent, SwapRelation, Trade

# Swap event field positions (sender, amount0In, amount1In, amount0Out, amount1Out, to)
AMOUNT0_IN  = 1
AMOUNT1_IN  = 2
AMOUNT0_OUT = 3
AMOUNT1_OUT = 4

# ---------- numeric helpers ---------------------------------------------------

def scale_amount(raw: str, decimals: int) -> Decimal:
    """Unsigned integer string -> Decimal in token units (raw / 10**decimals)."""
    s = raw.strip() if isinstance(raw, str) else ""
    # U256: plain ASCII digits only (int() would also take signs and underscores)
    if not (s.isascii() and s.isdigit()):
        raise DecodeError(f"malformed amount {raw!r}")
    return Decimal(int(s)).scaleb(-int(decimals))

def _field(event: RawSwapEvent, idx: int) -> str:
    try:
        return event.fields[idx].value
    except IndexError as e:
        raise DecodeError(f"event {event.tx_hash} has {len(event.fields)} fields, need index {idx}", e) from e

def _ratio(out_amt: Decimal, in_amt: Decimal, tx_hash: str) -> Decimal:
    if in_amt == 0:
        raise DecodeError(f"zero input amount in {tx_hash}")
    try:
        return out_amt / in_amt
    except InvalidOperation as e:
        raise DecodeError(f"cannot price {tx_hash}", e) from e

def pair_symbol(base: Asset, quote: Asset) -> str:
    return f"{base.symbol}-{quote.symbol}"

# ---------------------------- public API --------------------------------------

def decode_swap(
    event: RawSwapEvent,
    relation: SwapRelation,
    timestamp_ms: int,
    source: str,
) -> Trade:
    """
    Turn one swap event of `relation` into a Trade.

    fields[1] != "0": asset0 went in, asset1 came out (amount0In / amount1Out).
    otherwise:        asset1 went in, asset0 came out (amount1In / amount0Out).
    Volume is the negated input amount; price is out / in.
    """
    a0, a1 = relation.asset0, relation.asset1
    if _field(event, AMOUNT0_IN) != "0":
        amt_in  = scale_amount(_field(event, AMOUNT0_IN), a0.decimals)
        amt_out = scale_amount(_field(event, AMOUNT1_OUT), a1.decimals)
        base, quote = a0, a1
    else:
        amt_in  = scale_amount(_field(event, AMOUNT1_IN), a1.decimals)
        amt_out = scale_amount(_field(event, AMOUNT0_OUT), a0.decimals)
        base, quote = a1, a0

    price = _ratio(amt_out, amt_in, event.tx_hash)
    symbol = pair_symbol(base, quote)
    return Trade(
        time=datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc),
        symbol=symbol,
        pair=symbol,
        price=float(price),
        volume=float(-amt_in),
        foreign_trade_id=event.tx_hash,
        source=source,
        base_token=base,
        quote_token=quote,
        verified_pair=True,
    )
