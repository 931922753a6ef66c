"""Nonce tracking for replay protection.

A nonce moves from unseen to seen exactly once. Entries are kept for twice
the replay window so a request cannot be replayed while its timestamp is
still acceptable, even with clock skew between sweeps.

The persisted form is ``[[nonce, first_seen_ms], ...]`` with epoch milliseconds.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path

from .message import parse_timestamp
from .store import atomic_write_json

_LOG = logging.getLogger(__name__)

DEFAULT_WINDOW = 300.0


class NonceTracker:
    def __init__(self, window: float = DEFAULT_WINDOW, path: str | Path | None = None):
        self.window = float(window)
        self.path = Path(path) if path else None
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, nonce) -> bool:
        return nonce in self._seen

    def check_and_record(self, nonce: str, timestamp: str, now: float | None = None) -> bool:
        """Record *nonce* if it is fresh and *timestamp* is inside the window.

        Returns ``False`` for an unparseable or out-of-window timestamp and
        for a nonce that was already recorded.
        """
        now = time.time() if now is None else now
        ts = parse_timestamp(timestamp)
        if ts is None or abs(now - ts.timestamp()) > self.window:
            return False
        with self._lock:
            if nonce in self._seen:
                return False
            self._seen[nonce] = now
        return True

    def prune(self, now: float | None = None) -> int:
        """Drop entries first seen more than ``2 * window`` ago."""
        now = time.time() if now is None else now
        cutoff = now - 2 * self.window
        with self._lock:
            expired = [n for n, seen in self._seen.items() if seen < cutoff]
            for nonce in expired:
                del self._seen[nonce]
        return len(expired)

    def persist(self) -> None:
        if self.path is None:
            return
        with self._lock:
            data = [[nonce, int(seen * 1000)] for nonce, seen in self._seen.items()]
        atomic_write_json(self.path, data)

    def load(self) -> int:
        """Restore persisted nonces; a missing or corrupt file starts empty."""
        if self.path is None or not self.path.exists():
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            entries = {str(nonce): float(ms) / 1000.0 for nonce, ms in raw}
        except (OSError, ValueError, TypeError) as e:
            _LOG.warning("ignoring unreadable nonce file %s: %s", self.path, e)
            return 0
        with self._lock:
            self._seen.update(entries)
        return len(entries)

    def sweep(self, now: float | None = None) -> None:
        removed = self.prune(now)
        self.persist()
        _LOG.debug("nonce sweep: removed=%d kept=%d", removed, len(self._seen))
