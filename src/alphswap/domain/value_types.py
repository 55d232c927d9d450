from __future__ import annotations
from typing import NewType, Literal

Address    = NewType("Address", str)      # base58 contract address
TxHash     = NewType("TxHash", str)       # hex, no 0x
Blockchain = NewType("Blockchain", str)   # e.g. "Alephium"
BackpressurePolicy = Literal["block", "drop_oldest", "reject"]

ALPH_TOKEN_ID = "0" * 64
