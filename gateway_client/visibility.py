"""
Visibility tracking and the visibility-gated request queue.

Expensive requests made while the UI is in the background are held back
and replayed oldest-first once it is visible again. Only one drain runs at
a time, and a drain stops as soon as the UI goes back into the background.
"""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from shared.scheduling import Clock, SystemClock

VisibilityCallback = Callable[[bool], None]

DEFAULT_DISCARD_WINDOW_SECONDS = 3.0


class VisibilityTracker:
    """Holds the current visibility state and notifies subscribers of changes."""

    def __init__(self, visible: bool = True):
        self._visible = visible
        self._callbacks: list[VisibilityCallback] = []

    @property
    def visible(self) -> bool:
        return self._visible

    def on_change(self, callback: VisibilityCallback) -> Callable[[], None]:
        """
        Subscribe to visibility changes.

        The callback is invoked immediately with the current state.

        Returns:
            A function that unsubscribes the callback
        """
        self._callbacks.append(callback)
        callback(self._visible)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        self._visible = visible
        logger.debug("Visibility changed", visible=visible)
        for callback in list(self._callbacks):
            try:
                callback(visible)
            except Exception as e:
                logger.error(
                    "Visibility callback failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )


@dataclass(order=True)
class QueuedRequest:
    enqueued_at: float
    seq: int
    payload: Any = field(compare=False)
    future: asyncio.Future = field(compare=False)
    discard_at: Optional[float] = field(default=None, compare=False)
    on_result: Optional[Callable[[Any], None]] = field(default=None, compare=False)


class VisibilityGatedQueue:
    """Defers requests while invisible and drains them in submission order."""

    def __init__(
        self,
        handler: Callable[[Any], Awaitable[Any]],
        tracker: VisibilityTracker,
        clock: Optional[Clock] = None,
        discard_window_seconds: float = DEFAULT_DISCARD_WINDOW_SECONDS,
    ):
        self.handler = handler
        self.tracker = tracker
        self.clock = clock or SystemClock()
        self.discard_window_seconds = discard_window_seconds
        self._queue: list[QueuedRequest] = []
        self._seq = itertools.count()
        self._drain_task: Optional[asyncio.Task] = None
        self._unsubscribe = tracker.on_change(self._on_visibility_change)

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def _enqueue(self, payload: Any, discard_at: Optional[float] = None, on_result=None) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        entry = QueuedRequest(
            enqueued_at=self.clock.now(),
            seq=next(self._seq),
            payload=payload,
            future=future,
            discard_at=discard_at,
            on_result=on_result,
        )
        heapq.heappush(self._queue, entry)
        logger.debug("Request queued while hidden", queue_length=len(self._queue))
        return future

    async def submit(self, payload: Any) -> Any:
        """Run the request now if visible, otherwise wait for it to be drained."""
        if self.tracker.visible:
            return await self.handler(payload)
        return await self._enqueue(payload)

    async def submit_optimistic(
        self,
        payload: Any,
        placeholder: Any,
        on_result: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """
        Run a user-initiated request without blocking on visibility.

        When visible the real result is returned. Otherwise ``placeholder`` is
        returned immediately and the request is queued; if visibility returns
        within the discard window the real result is passed to ``on_result``,
        otherwise the request is dropped without running.
        """
        if self.tracker.visible:
            return await self.handler(payload)

        future = self._enqueue(
            payload,
            discard_at=self.clock.now() + self.discard_window_seconds,
            on_result=on_result,
        )
        # Nobody awaits optimistic futures; mark failures as retrieved
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        return placeholder

    def _on_visibility_change(self, visible: bool) -> None:
        if visible and self._queue and not self.draining:
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue and self.tracker.visible:
            entry = heapq.heappop(self._queue)
            if entry.future.done():
                continue

            if entry.discard_at is not None and self.clock.now() > entry.discard_at:
                logger.info("Discarding stale optimistic request", seq=entry.seq)
                entry.future.cancel()
                continue

            try:
                result = await self.handler(entry.payload)
            except asyncio.CancelledError:
                entry.future.cancel()
                raise
            except Exception as e:
                if not entry.future.done():
                    entry.future.set_exception(e)
                continue

            if not entry.future.done():
                entry.future.set_result(result)
            if entry.on_result is not None:
                try:
                    entry.on_result(result)
                except Exception as e:
                    logger.error("Result callback failed", seq=entry.seq, error=str(e))

    async def wait_drained(self) -> None:
        if self._drain_task is not None:
            await self._drain_task

    def close(self) -> None:
        """Stop listening for visibility and cancel everything still queued."""
        self._unsubscribe()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
        while self._queue:
            heapq.heappop(self._queue).future.cancel()
