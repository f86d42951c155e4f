"""Timing utilities for record-store and blob-store calls."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("projectdesk.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for async functions.

    Usage::

        @timed_async
        async def list_projects(self):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            tracker.record_call(func.__qualname__, duration_ms)
            logger.debug(
                "store call timed",
                extra={"call": func.__qualname__, "duration_ms": duration_ms},
            )
    return wrapper


class CallTracker:
    """
    Thread-safe in-memory tracker of store call durations.

    Keeps count, cumulative and slowest duration per qualified call name.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[str, list] = {}   # call name -> [count, total_ms, max_ms]

    def record_call(self, name: str, duration_ms: float) -> None:
        with self._lock:
            stats = self._stats.get(name)
            if stats is None:
                self._stats[name] = [1, duration_ms, duration_ms]
                return
            stats[0] += 1
            stats[1] += duration_ms
            if duration_ms > stats[2]:
                stats[2] = duration_ms

    def get_metrics(self) -> Dict[str, Any]:
        """
        Snapshot: {call name: {"count", "avg_ms", "max_ms"}}.
        """
        with self._lock:
            return {
                name: {
                    "count": count,
                    "avg_ms": round(total / count, 2),
                    "max_ms": round(slowest, 2),
                }
                for name, (count, total, slowest) in self._stats.items()
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._stats.clear()


# Module-level singleton, import this instance everywhere else.
tracker = CallTracker()
