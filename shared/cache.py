"""
Process-local result caching.

``ResultCache`` memoizes analysis results for a fixed freshness window.
``RequestDeduplicator`` serves the previous in-flight or last-known result
for a logical subject that is re-requested within a few seconds.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from .scheduling import Clock, SystemClock

DEFAULT_TTL_SECONDS = 5 * 60
FINGERPRINT_LENGTH = 100

_MISSING = object()


def generate_cache_key(image_data: str, params: Any = None) -> str:
    """Build a cache key from an image payload prefix plus serialized params.

    The prefix is a cheap fingerprint, not a hash. It is only good enough for
    cache lookups and must not be used to identify images.
    """
    image_prefix = image_data[:FINGERPRINT_LENGTH]
    params_string = json.dumps(params, sort_keys=True) if params is not None else ""
    return f"{image_prefix}_{params_string}"


@dataclass
class CacheEntry:
    value: Any
    timestamp: float


class ResultCache:
    """Time-windowed key/value cache with lazy eviction on read.

    There is no size bound: entries that are never read again stay in memory
    until ``clear`` or ``purge_expired`` is called.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SystemClock()
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        if self.clock.now() - entry.timestamp > self.ttl_seconds:
            del self._entries[key]
            return default

        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self.clock.now())

    def purge_expired(self) -> int:
        now = self.clock.now()
        expired = [k for k, e in self._entries.items() if now - e.timestamp > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class _SubjectState:
    task: Optional[asyncio.Future] = None
    result: Any = _MISSING
    fetched_at: float = 0.0


class RequestDeduplicator:
    """Collapse rapid repeat calls for the same logical subject.

    A call for a subject joins the subject's in-flight call if there is one,
    otherwise it is served the last result if that result is younger than
    ``window_seconds``. Only when neither applies is ``factory`` invoked.
    """

    def __init__(self, window_seconds: float = 3.0, clock: Optional[Clock] = None):
        self.window_seconds = window_seconds
        self.clock = clock or SystemClock()
        self._subjects: dict[str, _SubjectState] = {}

    def last_result(self, subject: str, default: Any = None) -> Any:
        state = self._subjects.get(subject)
        if state is None or state.result is _MISSING:
            return default
        return state.result

    def in_flight(self, subject: str) -> bool:
        state = self._subjects.get(subject)
        return bool(state and state.task and not state.task.done())

    async def run(self, subject: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        state = self._subjects.setdefault(subject, _SubjectState())

        if state.task is not None and not state.task.done():
            logger.debug("Joining in-flight request", subject=subject)
            return await asyncio.shield(state.task)

        if (
            state.result is not _MISSING
            and self.clock.now() - state.fetched_at < self.window_seconds
        ):
            logger.debug("Serving stale response", subject=subject)
            return state.result

        task = asyncio.ensure_future(factory())
        state.task = task
        task.add_done_callback(lambda t: self._record(state, t))
        return await asyncio.shield(task)

    def _record(self, state: _SubjectState, task: asyncio.Future) -> None:
        if state.task is task:
            state.task = None
        if task.cancelled() or task.exception() is not None:
            return
        state.result = task.result()
        state.fetched_at = self.clock.now()

    def cancel(self, subject: str) -> bool:
        """Abort the subject's in-flight call, if any."""
        state = self._subjects.get(subject)
        if state is None or state.task is None or state.task.done():
            return False
        state.task.cancel()
        state.task = None
        return True
