"""
Test doubles shared across the suite.
"""

from __future__ import annotations

import asyncio


async def settle(rounds: int = 20) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeTimer:
    """Manually advanced clock plus a matching async sleep.

    Pass ``timer.clock`` and ``timer.sleep`` to a PollScheduler; nothing
    wakes up until the test calls ``advance``.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleep_calls: list[float] = []
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleep_calls.append(delay)
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    @property
    def pending(self) -> int:
        return sum(1 for _, f in self._sleepers if not f.done())

    async def advance(self, seconds: float) -> None:
        """Move time forward, wake due sleepers and let them run."""
        self.now += seconds
        for wake_at, future in self._sleepers:
            if wake_at <= self.now and not future.done():
                future.set_result(None)
        self._sleepers = [(w, f) for w, f in self._sleepers if not f.done()]
        await settle()
