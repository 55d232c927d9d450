from __future__ import annotations

import asyncio
from collections import deque

from ..domain.errors import ChannelClosedError, ChannelFullError
from ..domain.models import Trade
from ..domain.value_types import BackpressurePolicy

_POLICIES = ("block", "drop_oldest", "reject")


class TradeChannel:
    """
    Outbound trade queue with an explicit backpressure policy.

    capacity=0 with policy "block" is a rendezvous: publish() returns only once a
    consumer has taken the trade, so a slow consumer stalls the producer.
    With capacity N, "block" waits for room, "drop_oldest" evicts the oldest
    queued trade and "reject" raises ChannelFullError.
    Meant for a single logical consumer.
    """

    def __init__(self, capacity: int = 0, policy: BackpressurePolicy = "block") -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        if policy not in _POLICIES:
            raise ValueError(f"unknown backpressure policy {policy!r}")
        if policy != "block" and capacity == 0:
            raise ValueError(f"policy {policy!r} needs capacity >= 1")
        self.capacity = capacity
        self.policy = policy
        self.dropped = 0
        self._items: deque[Trade] = deque()
        self._cond = asyncio.Condition()
        self._closed = False
        self._published = 0
        self._received = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    async def publish(self, trade: Trade) -> None:
        async with self._cond:
            if self._closed:
                raise ChannelClosedError("publish on closed trade channel")
            if self.policy == "block":
                room = max(self.capacity, 1)
                await self._cond.wait_for(lambda: self._closed or len(self._items) < room)
                if self._closed:
                    raise ChannelClosedError("trade channel closed while waiting for room")
            elif len(self._items) >= self.capacity:
                if self.policy == "reject":
                    raise ChannelFullError(f"trade channel full ({self.capacity})")
                self._items.popleft()
                self.dropped += 1
            self._items.append(trade)
            self._published += 1
            seq = self._published
            self._cond.notify_all()
            if self.capacity == 0:
                await self._cond.wait_for(lambda: self._closed or self._received >= seq)
                if self._received < seq:
                    # not handed out: take it back so a post-close drain cannot deliver it
                    self._items = deque(t for t in self._items if t is not trade)
                    raise ChannelClosedError("trade channel closed before trade was received")

    async def receive(self) -> Trade:
        async with self._cond:
            await self._cond.wait_for(lambda: bool(self._items) or self._closed)
            if not self._items:
                raise ChannelClosedError("trade channel closed")
            trade = self._items.popleft()
            self._received += 1
            self._cond.notify_all()
            return trade

    async def close(self) -> None:
        async with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __aiter__(self) -> "TradeChannel":
        return self

    async def __anext__(self) -> Trade:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None
