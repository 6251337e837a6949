from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from fastapi import Request

from .config import RATE_LIMIT_MAX, RATE_LIMIT_TRUST_PROXY, RATE_LIMIT_WINDOW_SECONDS


class RateLimiter:
    """Sliding-window request counter per client IP."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        trust_forwarded: bool = RATE_LIMIT_TRUST_PROXY,
        cleanup_interval: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.trust_forwarded = trust_forwarded
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._requests: dict[str, list[float]] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def client_key(self, request: Request) -> str:
        """Socket peer address; X-Forwarded-For only when running behind a trusted proxy."""
        if self.trust_forwarded:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _cleanup_old_records(self, now: float) -> None:
        """Drop timestamps outside the window and keys left empty. Caller holds the lock."""
        cutoff = now - self.window_seconds
        for key, stamps in list(self._requests.items()):
            recent = [t for t in stamps if t > cutoff]
            if recent:
                self._requests[key] = recent
            else:
                del self._requests[key]
        self._last_cleanup = now

    def hit(self, key: str) -> Optional[int]:
        """Record one request for ``key``.

        Returns None when allowed, otherwise the seconds until a slot frees up.
        """
        if not self.enabled:
            return None
        now = self._clock()
        cutoff = now - self.window_seconds
        with self._lock:
            if now - self._last_cleanup >= self.cleanup_interval:
                self._cleanup_old_records(now)
            recent = [t for t in self._requests.get(key, ()) if t > cutoff]
            if len(recent) >= self.max_requests:
                self._requests[key] = recent
                return max(1, int(recent[0] - cutoff))
            recent.append(now)
            self._requests[key] = recent
        return None
