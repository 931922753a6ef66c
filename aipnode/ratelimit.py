"""Per-requester sliding-window rate limiting (in-memory only)."""

from __future__ import annotations

import threading
import time


class RateLimiter:
    def __init__(self, max_requests: int = 10, window: float = 60.0):
        self.max_requests = int(max_requests)
        self.window = float(window)
        self._buckets: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def allow(self, identity: str, now: float | None = None) -> bool:
        """Count a request from *identity*; False once the window is full."""
        now = time.time() if now is None else now
        with self._lock:
            bucket = [ts for ts in self._buckets.get(identity, ()) if now - ts < self.window]
            if len(bucket) >= self.max_requests:
                self._buckets[identity] = bucket
                return False
            bucket.append(now)
            self._buckets[identity] = bucket
            return True

    def bucket_size(self, identity: str) -> int:
        return len(self._buckets.get(identity, ()))

    def prune(self, now: float | None = None) -> None:
        """Forget identities with no request inside the window."""
        now = time.time() if now is None else now
        with self._lock:
            for identity in list(self._buckets):
                if all(now - ts >= self.window for ts in self._buckets[identity]):
                    del self._buckets[identity]
