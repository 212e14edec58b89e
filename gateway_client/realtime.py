"""
Scheduled re-analysis of the current camera subject.

While the UI is visible the analyzer re-scores the active subject every
``interval`` seconds. Repeat requests inside the stale window reuse the
last result. When the subject changes, its in-flight call is cancelled and
any late result for it is dropped.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from shared.cache import RequestDeduplicator
from shared.errors import GatewayError
from shared.scheduling import Clock, PeriodicTask, SystemClock

from .visibility import VisibilityTracker

PLACEHOLDER_SCORES = {"comfort": 70, "fitConfidence": 65, "colorHarmony": 80}


class RealtimeAnalyzer:
    """Keeps a live score for the active subject."""

    def __init__(
        self,
        analyze: Callable[[str], Awaitable[Any]],
        tracker: VisibilityTracker,
        clock: Optional[Clock] = None,
        interval: float = 5.0,
        stale_window: float = 3.0,
        idle_timeout: float = 30.0,
        on_update: Optional[Callable[[str, Any], None]] = None,
    ):
        self.analyze = analyze
        self.tracker = tracker
        self.clock = clock or SystemClock()
        self.idle_timeout = idle_timeout
        self.on_update = on_update
        self.dedup = RequestDeduplicator(window_seconds=stale_window, clock=self.clock)
        self.task = PeriodicTask("realtime-analysis", interval, self.tick, clock=self.clock)

        self.subject: Optional[str] = None
        self.image_data: Optional[str] = None
        self.latest: dict[str, Any] = {}
        self.last_activity = self.clock.now()
        self._runner: Optional[asyncio.Task] = None

    def touch(self) -> None:
        """Record user activity; the loop idles after ``idle_timeout`` without any."""
        self.last_activity = self.clock.now()

    def set_subject(self, subject: str, image_data: str) -> None:
        """Switch the subject being analyzed, cancelling the old subject's call."""
        if self.subject is not None and subject != self.subject:
            if self.dedup.cancel(self.subject):
                logger.debug("Cancelled analysis of previous subject", subject=self.subject)
        self.subject = subject
        self.image_data = image_data
        self.touch()

    def current(self, subject: Optional[str] = None) -> Any:
        """Latest committed result for a subject, or placeholder scores."""
        subject = subject or self.subject
        return self.latest.get(subject, PLACEHOLDER_SCORES)

    @property
    def idle(self) -> bool:
        return self.clock.now() - self.last_activity > self.idle_timeout

    async def tick(self) -> Optional[Any]:
        """Analyze the active subject once, if the UI is visible and not idle."""
        if not self.tracker.visible or self.subject is None or self.idle:
            return None

        subject, image_data = self.subject, self.image_data
        try:
            result = await self.dedup.run(subject, lambda: self.analyze(image_data))
        except asyncio.CancelledError:
            if self.subject != subject:
                return None
            raise
        except GatewayError as e:
            logger.warning("Realtime analysis failed", subject=subject, error=e.message)
            return None

        if self.subject != subject:
            logger.debug("Dropping result for inactive subject", subject=subject)
            return None

        self.latest[subject] = result
        if self.on_update is not None:
            self.on_update(subject, result)
        return result

    def start(self) -> None:
        if self._runner is not None and not self._runner.done():
            return
        self.task.start()
        self._runner = asyncio.get_running_loop().create_task(self.task.run_forever())

    async def stop(self) -> None:
        self.task.stop()
        if self.subject is not None:
            self.dedup.cancel(self.subject)
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
