"""
Clocks and scheduled tasks.

Everything that reads the time (cache freshness, record timestamps, queue
ordering, re-analysis loops) takes a ``Clock`` so tests can drive time by
hand with ``ManualClock``.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from loguru import logger


class Clock:
    """Wall-clock time source."""

    def now(self) -> float:
        """Seconds since the epoch."""
        return time.time()

    def now_ms(self) -> int:
        return int(self.now() * 1000)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


SystemClock = Clock


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)


class PeriodicTask:
    """Runs an async callback every ``interval`` seconds of clock time.

    ``run_pending`` fires the callback at most once when it is due;
    ``run_forever`` loops on the clock until ``stop`` is called.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        clock: Optional[Clock] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.clock = clock or SystemClock()
        self.next_run_at: Optional[float] = None
        self.run_count = 0

    @property
    def active(self) -> bool:
        return self.next_run_at is not None

    def start(self) -> None:
        self.next_run_at = self.clock.now()

    def stop(self) -> None:
        self.next_run_at = None

    def seconds_until_due(self) -> float:
        if self.next_run_at is None:
            return self.interval
        return max(0.0, self.next_run_at - self.clock.now())

    async def run_pending(self) -> bool:
        """Run the callback if it is due; returns whether it ran."""
        if self.next_run_at is None or self.clock.now() < self.next_run_at:
            return False

        self.next_run_at = self.clock.now() + self.interval
        self.run_count += 1
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Scheduled task failed",
                task=self.name,
                error_type=type(e).__name__,
                error=str(e),
            )
        return True

    async def run_forever(self) -> None:
        if not self.active:
            self.start()
        while self.active:
            await self.run_pending()
            await self.clock.sleep(self.seconds_until_due())
