# src/healthmesh/core/ticker.py
"""
Tickers drive the scheduler's per-tool cycles.

The scheduler only ever awaits `Ticker.wait()`, so tests can replace wall-clock
timing with a ManualTicker and fire cycles explicitly.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


class Ticker(ABC):
    """Source of cycle ticks for one tool."""

    @abstractmethod
    async def wait(self) -> None:
        """Return when the next tick fires."""
        pass


class IntervalTicker(Ticker):
    """
    Fixed-rate ticker. The first tick fires immediately, then every `interval`
    seconds measured from the first one. Ticks missed while the caller was
    busy are dropped rather than fired in a burst.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        if interval <= 0:
            raise ValueError(f"interval must be greater than 0, got {interval}")
        self.interval = interval
        self._clock = clock
        self._next_deadline = None

    async def wait(self) -> None:
        now = self._clock()
        if self._next_deadline is None:
            self._next_deadline = now + self.interval
            return

        delay = self._next_deadline - now
        if delay > 0:
            await asyncio.sleep(delay)
            self._next_deadline += self.interval
        else:
            missed = int(-delay // self.interval)
            if missed:
                logger.debug(f"Ticker fell behind by {missed} interval(s)")
            self._next_deadline += self.interval * (missed + 1)


class ManualTicker(Ticker):
    """Ticker that fires only when `fire()` is called."""

    def __init__(self):
        self._pending = asyncio.Queue()

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            self._pending.put_nowait(None)

    async def wait(self) -> None:
        await self._pending.get()
