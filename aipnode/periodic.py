"""Background periodic tasks that never overlap their own previous run."""

from __future__ import annotations

import logging
import threading
from typing import Callable

_LOG = logging.getLogger(__name__)


class PeriodicTask:
    """Run *func* every *interval* seconds on a daemon thread.

    ``run_once`` is single-flight: if a run is still in progress (for
    example a manual call racing the timer) the new tick is skipped.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], None]):
        self.name = name
        self.interval = float(interval)
        self._func = func
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Run one tick. Returns False if the previous tick was still running."""
        if not self._running.acquire(blocking=False):
            _LOG.warning("%s: previous run still active, skipping tick", self.name)
            return False
        try:
            self._func()
        except Exception:
            _LOG.exception("%s: periodic run failed", self.name)
        finally:
            self._running.release()
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

    def start(self) -> None:
        if self.is_alive:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        _LOG.debug("%s: started (interval=%ss)", self.name, self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
