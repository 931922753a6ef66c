"""Inbox validation pipeline and task lifecycle.

Task states::

    pending -> completed
    pending -> rejected

``completed`` and ``rejected`` are terminal. Submission checks run cheapest
first (field presence, rate limit, nonce) so spam never reaches signature
verification, and capability matching runs only for authenticated callers.
No failure path persists anything.
"""

from __future__ import annotations

import logging
import threading
import time
import weakref
from typing import Callable, Optional

from .callbacks import CallbackDispatcher, callback_payload
from .canonicaljson import FORM_FIELDS
from .errors import (
    CapabilityNotFoundError,
    DuplicateTaskError,
    InvalidNonceError,
    InvalidSignatureError,
    MalformedRequestError,
    MissingFieldsError,
    MissingResultError,
    RateLimitedError,
    TaskNotFoundError,
    TaskStateError,
)
from .identity import Identity
from .manifest import capability_types
from .message import build_receipt, parse_timestamp, utc_now_iso
from .ratelimit import RateLimiter
from .replay import NonceTracker
from .signing import REQUEST_FIELDS, verify
from .store import ReceiptStore, TaskStore, is_valid_key
from .types import TaskRecord

_LOG = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
REJECTED = "rejected"
TERMINAL_STATES = frozenset({COMPLETED, REJECTED})

REQUIRED_FIELDS = (
    "task_id",
    "requester_id",
    "task_type",
    "description",
    "nonce",
    "timestamp",
    "signature",
)
OPTIONAL_FIELDS = ("params", "payment_offer", "callback_url", "deadline")
LIST_DESCRIPTION_CHARS = 200
DEFAULT_REJECTION_REASON = "No reason given"


def _short(value: str, n: int = 12) -> str:
    return f"{value[:n]}..." if len(value) > n else value


def _parse_limit(limit) -> Optional[int]:
    if limit is None or limit == "":
        return None
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise MalformedRequestError(f"limit must be an integer, got {limit!r}")
    return max(value, 0)


def _completion_time(receipt: dict) -> float:
    parsed = parse_timestamp(receipt.get("completion_timestamp"))
    return parsed.timestamp() if parsed else 0.0


class Inbox:
    """One agent's inbox: validation, storage and receipt issuance.

    All mutable state (nonces, rate buckets, stores, keys) lives on the
    instance, so several inboxes can coexist in one process.
    """

    def __init__(
        self,
        identity: Identity,
        manifest: dict,
        tasks: TaskStore,
        receipts: ReceiptStore,
        nonces: NonceTracker | None = None,
        rate_limiter: RateLimiter | None = None,
        callbacks: CallbackDispatcher | None = None,
        form: str = FORM_FIELDS,
        clock: Callable[[], float] = time.time,
    ):
        self.identity = identity
        self.manifest = manifest
        self.tasks = tasks
        self.receipts = receipts
        self.nonces = nonces if nonces is not None else NonceTracker()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter()
        self.callbacks = callbacks
        self.form = form
        self._clock = clock
        self._task_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def agent_id(self) -> str:
        return self.identity.public_key_base64

    def _lock_for(self, task_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._task_locks.get(task_id)
            if lock is None:
                lock = self._task_locks[task_id] = threading.Lock()
            return lock

    def _load(self, task_id) -> TaskRecord:
        if not is_valid_key(task_id):
            raise TaskNotFoundError()
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError()
        return task

    # -- submission ---------------------------------------------------------

    def submit(self, request, now: float | None = None) -> dict:
        """Validate and store a signed task request.

        Raises:
            InboxError: One subclass per failed check, in pipeline order.
        """
        now = self._clock() if now is None else now
        if not isinstance(request, dict):
            raise MalformedRequestError("Request body must be a JSON object")

        if any(not request.get(name) for name in REQUIRED_FIELDS):
            _LOG.warning("inbox rejected request: missing_fields")
            raise MissingFieldsError()
        bad = [n for n in REQUIRED_FIELDS if not isinstance(request[n], str)]
        if bad:
            raise MalformedRequestError(f"Fields must be strings: {', '.join(bad)}")
        if not is_valid_key(request["task_id"]):
            raise MalformedRequestError("task_id must be a UUID or similar token")

        task_id = request["task_id"]
        requester_id = request["requester_id"]

        if not self.rate_limiter.allow(requester_id, now):
            _LOG.warning("inbox rejected %s: rate_limited (%s)", task_id, _short(requester_id))
            raise RateLimitedError(
                f"Max {self.rate_limiter.max_requests} requests per "
                f"{self.rate_limiter.window:g}s per requester"
            )

        if not self.nonces.check_and_record(request["nonce"], request["timestamp"], now):
            _LOG.warning("inbox rejected %s: invalid_nonce", task_id)
            raise InvalidNonceError(
                "Nonce already seen or timestamp out of range "
                f"(±{self.nonces.window / 60:g} minutes)"
            )

        if not verify(request, request["signature"], requester_id, REQUEST_FIELDS, self.form):
            _LOG.warning("inbox rejected %s: invalid_signature", task_id)
            raise InvalidSignatureError()

        supported = capability_types(self.manifest)
        if request["task_type"] not in supported:
            _LOG.warning("inbox rejected %s: capability_not_found (%s)", task_id, request["task_type"])
            raise CapabilityNotFoundError(
                f"This agent does not support task type: {request['task_type']}",
                supported=supported,
            )

        with self._lock_for(task_id):
            if self.tasks.exists(task_id):
                raise DuplicateTaskError()
            stamp = utc_now_iso()
            task = {name: request[name] for name in REQUIRED_FIELDS}
            for name in OPTIONAL_FIELDS:
                task[name] = request.get(name) or None
            task.update(
                status=PENDING,
                created=stamp,
                updated=stamp,
                result=None,
                receipt=None,
            )
            self.tasks.save(task)

        _LOG.info(
            "new task %s (%s) from %s",
            task_id,
            request["task_type"],
            _short(requester_id),
        )
        return {
            "status": "accepted",
            "task_id": task_id,
            "message": "Task received and queued for evaluation",
            "status_url": f"/tasks/{task_id}/status",
        }

    # -- lifecycle ----------------------------------------------------------

    def complete(self, task_id: str, result, payment_proof: str | None = None) -> dict:
        """Mark a pending task completed and issue its signed receipt."""
        with self._lock_for(task_id):
            task = self._load(task_id)
            if result is None or result == "":
                raise MissingResultError()
            if task["status"] in TERMINAL_STATES:
                raise TaskStateError(f"Task is already {task['status']}")

            receipt = build_receipt(task, self.identity, result, payment_proof, form=self.form)
            task["status"] = COMPLETED
            task["result"] = result
            task["receipt"] = receipt
            task["updated"] = utc_now_iso()
            self.tasks.save(task)
            self.receipts.save(receipt)

        _LOG.info(
            "task %s completed, result hash %s...",
            task_id,
            receipt["result_hash"][:16],
        )
        self._notify(task)
        return {"status": COMPLETED, "task_id": task_id, "receipt": receipt}

    def reject(self, task_id: str, reason: str | None = None) -> dict:
        """Reject a pending task. Terminal tasks are refused with TaskStateError."""
        with self._lock_for(task_id):
            task = self._load(task_id)
            if task["status"] in TERMINAL_STATES:
                raise TaskStateError(f"Task is already {task['status']}")
            task["status"] = REJECTED
            task["rejection_reason"] = reason or DEFAULT_REJECTION_REASON
            task["updated"] = utc_now_iso()
            self.tasks.save(task)

        _LOG.info("task %s rejected: %s", task_id, task["rejection_reason"])
        self._notify(task)
        return {"status": REJECTED, "task_id": task_id, "reason": task["rejection_reason"]}

    def sweep(self, now: float | None = None) -> None:
        """Prune replay and rate-limit state and persist the nonce set."""
        self.nonces.sweep(now)
        self.rate_limiter.prune(now)

    def _notify(self, task: dict) -> None:
        if self.callbacks is not None and task.get("callback_url"):
            self.callbacks.enqueue(task["task_id"], task["callback_url"], callback_payload(task))

    # -- queries ------------------------------------------------------------

    def status(self, task_id: str) -> dict:
        task = self._load(task_id)
        status = {
            "task_id": task["task_id"],
            "status": task["status"],
            "task_type": task["task_type"],
            "created": task["created"],
            "updated": task["updated"],
            "result": task.get("result") if task["status"] == COMPLETED else None,
            "receipt": task.get("receipt"),
        }
        if task["status"] == REJECTED:
            status["rejection_reason"] = task.get("rejection_reason")
        return status

    def list_tasks(self, status: str | None = None, limit=None) -> dict:
        limit = _parse_limit(limit)
        tasks = [
            {
                "task_id": t["task_id"],
                "requester_id": t["requester_id"],
                "task_type": t["task_type"],
                "description": str(t.get("description", ""))[:LIST_DESCRIPTION_CHARS],
                "status": t["status"],
                "created": t["created"],
                "updated": t["updated"],
            }
            for t in self.tasks.all()
        ]
        if status:
            tasks = [t for t in tasks if t["status"] == status]
        tasks.sort(key=lambda t: t["created"], reverse=True)
        if limit is not None:
            tasks = tasks[:limit]
        return {"total": len(tasks), "tasks": tasks}

    def list_receipts(self, agent_id: str | None = None, task_type: str | None = None, limit=None) -> dict:
        limit = _parse_limit(limit)
        receipts = self.receipts.all()
        if agent_id:
            receipts = [r for r in receipts if r.get("agent_id") == agent_id]
        if task_type:
            receipts = [r for r in receipts if r.get("task_type") == task_type]
        receipts.sort(key=_completion_time, reverse=True)
        if limit is not None:
            receipts = receipts[:limit]
        return {"agent_id": self.agent_id, "total": len(receipts), "receipts": receipts}

    def health(self, uptime: float) -> dict:
        return {
            "status": "online",
            "agent": self.manifest.get("agent_name"),
            "protocol_version": self.manifest.get("protocol_version"),
            "uptime": uptime,
            "tasks_total": self.tasks.count(),
            "receipts_total": self.receipts.count(),
        }
