from __future__ import annotations

import asyncio
import logging
import time
from collections import deque

from .constants import RATE_LIMIT_WINDOW_SEC

logger = logging.getLogger(__name__)


class RequestBucket:
    """Sliding-window limit of ``per_minute`` vision requests per ``window_sec``.

    Waiters are served in arrival order: the lock is held while a caller sleeps for the
    oldest slot to expire, so later frames queue behind it.
    """

    def __init__(self, per_minute: int, window_sec: float = RATE_LIMIT_WINDOW_SEC, label: str | None = None) -> None:
        if per_minute <= 0:
            raise ValueError("per_minute must be a positive integer")
        if window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self.per_minute = per_minute
        self.window_sec = window_sec
        self.label = label
        self._sent: deque[float] = deque()
        self._lock: asyncio.Lock | None = None

    def __repr__(self) -> str:
        return f"RequestBucket(per_minute={self.per_minute}, window_sec={self.window_sec}, label={self.label!r})"

    def _expire(self, now: float) -> None:
        cutoff = now - self.window_sec
        while self._sent and self._sent[0] <= cutoff:
            self._sent.popleft()

    async def acquire(self) -> None:
        # Created lazily so the bucket can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            self._expire(time.monotonic())
            while len(self._sent) >= self.per_minute:
                delay = self._sent[0] + self.window_sec - time.monotonic()
                logger.debug("%s throttled for %.2fs", self.label or "requests", max(delay, 0.0))
                await asyncio.sleep(max(delay, 0.0))
                self._expire(time.monotonic())
            self._sent.append(time.monotonic())

    def utilization(self) -> float:
        self._expire(time.monotonic())
        return min(len(self._sent) / self.per_minute, 1.0)
