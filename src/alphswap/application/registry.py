from __future__ import annotations

import threading

from ..domain.models import ExchangePair
from .lifecycle import TerminalCell


class PairHandle:
    """Per-pair registration; a read-only window onto the scraper's terminal state."""

    __slots__ = ("pair", "last_record", "closed", "_terminal")

    def __init__(self, pair: ExchangePair, terminal: TerminalCell) -> None:
        self.pair = pair
        self.last_record = 0
        self.closed = False
        self._terminal = terminal

    def close(self) -> None:
        # local only; the scraper keeps running
        self.closed = True

    def error(self) -> BaseException | None:
        return self._terminal.error

    def __repr__(self) -> str:
        return f"PairHandle({self.pair.symbol!r}, closed={self.closed})"


class PairRegistry:
    """pair symbol -> PairHandle; re-registering a symbol replaces the old handle."""

    def __init__(self, terminal: TerminalCell) -> None:
        self._terminal = terminal
        self._lock = threading.Lock()
        self._handles: dict[str, PairHandle] = {}

    def register(self, pair: ExchangePair) -> PairHandle:
        with self._terminal.open_state():
            handle = PairHandle(pair, self._terminal)
            with self._lock:
                self._handles[pair.symbol] = handle
            return handle

    def get(self, symbol: str) -> PairHandle | None:
        with self._lock:
            return self._handles.get(symbol)

    def handles(self) -> list[PairHandle]:
        with self._lock:
            return list(self._handles.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
