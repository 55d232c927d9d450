from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from ..domain.errors import AlreadyClosedError, ClosedError
from ..domain.models import TerminalState


class TerminalCell:
    """
    Single-assignment holder of the scraper's terminal state.

    Written once by the shutdown path, read by pair handles and close().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: TerminalState | None = None

    def publish(self, error: BaseException | None = None) -> TerminalState:
        with self._lock:
            if self._state is not None:
                raise AlreadyClosedError("terminal state already published")
            self._state = TerminalState(closed=True, error=error)
            return self._state

    @contextmanager
    def open_state(self) -> Iterator[None]:
        """Hold the lock while the engine is known to be open; raise otherwise."""
        with self._lock:
            st = self._state
            if st is not None:
                if st.error is not None:
                    raise st.error
                raise ClosedError("scraper is closed")
            yield

    @property
    def state(self) -> TerminalState | None:
        with self._lock:
            return self._state

    @property
    def closed(self) -> bool:
        return self.state is not None

    @property
    def error(self) -> BaseException | None:
        st = self.state
        return st.error if st is not None else None
