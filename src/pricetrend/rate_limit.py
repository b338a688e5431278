from __future__ import annotations

from collections import deque
from threading import Lock
from time import monotonic


class SlidingWindowRateLimiter:
    """Per-client request limiter over a rolling time window.

    Clients with no hits inside the window are forgotten, at most one sweep
    per window length.
    """

    def __init__(self, limit: int, window_seconds: float = 60.0) -> None:
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = {}
        self._lock = Lock()
        self._last_sweep: float | None = None

    def allow(self, client: str, now: float | None = None) -> tuple[bool, float]:
        """Record a hit for ``client``; return (allowed, seconds until retry)."""
        current = monotonic() if now is None else now
        cutoff = current - self.window_seconds
        with self._lock:
            self._sweep(current, cutoff)
            hits = self._hits.setdefault(client, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.limit:
                return False, max(0.0, hits[0] - cutoff)

            hits.append(current)
            return True, 0.0

    def _sweep(self, current: float, cutoff: float) -> None:
        if self._last_sweep is not None and current - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = current
        idle = [client for client, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for client in idle:
            del self._hits[client]
