"""Tick source + handler scheduling for periodic polling.

Ticks are pulled one at a time and the handler is awaited before the next tick
is requested, so handler runs never overlap. Sleep is injectable so ordering
can be tested without wall-clock delays.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Protocol

from .logging_config import setup_logger

logger = setup_logger("tradedesk.scheduler")

Sleep = Callable[[float], Awaitable[object]]
Handler = Callable[[], Awaitable[object]]


class TickSource(Protocol):
    def __aiter__(self) -> AsyncIterator[int]:
        ...


class IntervalTicks:
    """Yields tick numbers every ``interval_sec``; the first tick fires immediately."""

    def __init__(
        self,
        interval_sec: float,
        *,
        sleep: Sleep = asyncio.sleep,
        limit: int | None = None,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self._interval = float(interval_sec)
        self._sleep = sleep
        self._limit = limit

    async def __aiter__(self) -> AsyncIterator[int]:
        tick = 0
        while self._limit is None or tick < self._limit:
            if tick:
                await self._sleep(self._interval)
            yield tick
            tick += 1


class PollScheduler:
    def __init__(self, ticks: TickSource, handler: Handler) -> None:
        self._ticks = ticks
        self._handler = handler
        self._stopped = False
        self.handled = 0
        self.failures = 0

    def stop(self) -> None:
        self._stopped = True

    async def run(self) -> int:
        """Drive the handler once per tick until the source ends or `stop` is called."""
        async for tick in self._ticks:
            if self._stopped:
                break
            try:
                await self._handler()
            except Exception:
                self.failures += 1
                logger.exception(f"Poll handler failed on tick {tick}")
            self.handled += 1
        return self.handled
