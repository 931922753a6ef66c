"""Result notification to requester ``callback_url``s.

Deliveries are retried with exponential backoff: after failed attempt *n*
the next attempt is due ``backoff_base * 2 ** (n - 1)`` seconds later. After
``max_attempts`` failures a delivery is dead-lettered (terminal) and written
to the dead-letter directory. Deliveries still queued at ``stop()`` are
dead-lettered the same way. Delivery never blocks task storage: the inbox
only enqueues, a background ``PeriodicTask`` sends.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

import requests

from .periodic import PeriodicTask
from .store import JsonDirectoryStore

_LOG = logging.getLogger(__name__)

PENDING = "pending"
DELIVERED = "delivered"
DEAD = "dead_letter"
SHUTDOWN_ERROR = "undelivered at shutdown"
DEAD_LETTER_HISTORY = 1000


@dataclass
class Delivery:
    task_id: str
    url: str
    payload: dict[str, Any]
    attempts: int = 0
    next_attempt: float = 0.0
    last_error: Optional[str] = None
    state: str = PENDING
    history: list[str] = field(default_factory=list)


def callback_payload(task: dict) -> dict:
    return {
        "task_id": task["task_id"],
        "status": task["status"],
        "result": task.get("result") if task["status"] == "completed" else None,
        "receipt": task.get("receipt"),
        "rejection_reason": task.get("rejection_reason"),
    }


class CallbackDispatcher:
    def __init__(
        self,
        max_attempts: int = 5,
        backoff_base: float = 2.0,
        timeout: float = 15.0,
        dead_letter_dir: str | Path | None = None,
        session=None,
        poll_interval: float = 1.0,
    ):
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = float(backoff_base)
        self.timeout = timeout
        self._session = session or requests.Session()
        self._dead_store = JsonDirectoryStore(dead_letter_dir) if dead_letter_dir else None
        self._pending: list[Delivery] = []
        self.dead_letters: deque[Delivery] = deque(maxlen=DEAD_LETTER_HISTORY)
        self._lock = threading.Lock()
        self._task = PeriodicTask("callback-dispatcher", poll_interval, self.process_due)

    def __len__(self) -> int:
        return len(self._pending)

    def backoff(self, attempts: int) -> float:
        """Delay before the attempt following failed attempt number *attempts*."""
        return self.backoff_base * (2 ** (attempts - 1))

    def enqueue(self, task_id: str, url: str, payload: dict, now: float | None = None) -> Delivery:
        now = time.time() if now is None else now
        delivery = Delivery(task_id=task_id, url=url, payload=payload, next_attempt=now)
        scheme = urlparse(url).scheme if isinstance(url, str) else ""
        if scheme not in ("http", "https"):
            delivery.last_error = f"unsupported callback url: {url!r}"
            self._dead_letter(delivery)
            return delivery
        with self._lock:
            self._pending.append(delivery)
        _LOG.debug("callback queued for task %s -> %s", task_id, url)
        return delivery

    def process_due(self, now: float | None = None) -> int:
        """Attempt every due delivery once. Returns the number delivered."""
        now = time.time() if now is None else now
        with self._lock:
            due = [d for d in self._pending if d.next_attempt <= now]
            self._pending = [d for d in self._pending if d.next_attempt > now]

        delivered = 0
        retry = []
        for delivery in due:
            if self._attempt(delivery):
                delivered += 1
            elif delivery.attempts >= self.max_attempts:
                self._dead_letter(delivery)
            else:
                delivery.next_attempt = now + self.backoff(delivery.attempts)
                retry.append(delivery)

        if retry:
            with self._lock:
                self._pending.extend(retry)
        return delivered

    def _attempt(self, delivery: Delivery) -> bool:
        delivery.attempts += 1
        try:
            resp = self._session.post(delivery.url, json=delivery.payload, timeout=self.timeout)
        except requests.RequestException as e:
            delivery.last_error = f"POST {delivery.url} failed: {e}"
        else:
            if 200 <= resp.status_code < 300:
                delivery.state = DELIVERED
                _LOG.info(
                    "callback delivered for task %s (attempt %d)",
                    delivery.task_id,
                    delivery.attempts,
                )
                return True
            delivery.last_error = f"HTTP {resp.status_code}"
        delivery.history.append(delivery.last_error)
        _LOG.warning(
            "callback attempt %d/%d for task %s failed: %s",
            delivery.attempts,
            self.max_attempts,
            delivery.task_id,
            delivery.last_error,
        )
        return False

    def _dead_letter(self, delivery: Delivery) -> None:
        delivery.state = DEAD
        self.dead_letters.append(delivery)
        _LOG.error(
            "callback for task %s dead-lettered after %d attempt(s): %s",
            delivery.task_id,
            delivery.attempts,
            delivery.last_error,
        )
        if self._dead_store is not None:
            self._dead_store.put(
                delivery.task_id,
                {
                    "task_id": delivery.task_id,
                    "url": delivery.url,
                    "payload": delivery.payload,
                    "attempts": delivery.attempts,
                    "error": delivery.last_error,
                    "history": delivery.history,
                    "failed_at": datetime.now(timezone.utc).isoformat(),
                },
            )

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        """Stop sending and dead-letter whatever is still queued."""
        self._task.stop()
        with self._lock:
            remaining, self._pending = self._pending, []
        for delivery in remaining:
            delivery.last_error = SHUTDOWN_ERROR
            self._dead_letter(delivery)
