"""Filesystem task-drop bridge.

Lets a local tool submit AIP tasks by dropping ``aip-*.json`` files
(``{"task_type", "description", "params"?, "payment_offer"?, "deadline"?}``)
into a directory. Each file is signed and submitted once; a
``<stem>-tracking.json`` file in the results directory follows the task and
receives the result and receipt when the task completes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .client import InboxClient
from .errors import AIPError, InboxRequestError, TransportError
from .message import utc_now_iso
from .periodic import PeriodicTask
from .store import atomic_write_json

_LOG = logging.getLogger(__name__)

DROP_PATTERN = "aip-*.json"
TRACKING_SUFFIX = "-tracking.json"
FINAL_STATES = ("completed", "rejected")


class TaskDropBridge:
    def __init__(
        self,
        client: InboxClient,
        tasks_dir: str | Path,
        results_dir: str | Path,
        processed_path: str | Path,
        interval: float = 5,
    ):
        self.client = client
        self.tasks_dir = Path(tasks_dir)
        self.results_dir = Path(results_dir)
        self.processed_path = Path(processed_path)
        self.tasks_dir.mkdir(parents=True, exist_ok=True)
        self.results_dir.mkdir(parents=True, exist_ok=True)
        self._processed = self._load_processed()
        self._periodic = PeriodicTask("task-drop-bridge", interval, self.tick)

    def _load_processed(self) -> set[str]:
        if not self.processed_path.exists():
            return set()
        try:
            data = json.loads(self.processed_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _LOG.warning("ignoring unreadable processed list %s: %s", self.processed_path, e)
            return set()
        return set(data) if isinstance(data, list) else set()

    def _mark_processed(self, name: str) -> None:
        self._processed.add(name)
        atomic_write_json(self.processed_path, sorted(self._processed))

    def is_processed(self, name: str) -> bool:
        return name in self._processed

    def pending_files(self) -> list[Path]:
        return [p for p in sorted(self.tasks_dir.glob(DROP_PATTERN)) if p.name not in self._processed]

    def submit_file(self, path: Path) -> dict | None:
        """Submit one drop file. Returns the tracking record, or None if not accepted."""
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("drop file must contain a JSON object")
            request = self.client.build_task(
                raw["task_type"],
                raw["description"],
                params=raw.get("params"),
                payment_offer=raw.get("payment_offer"),
                deadline=raw.get("deadline"),
            )
        except (OSError, ValueError, KeyError) as e:
            _LOG.warning("skipping unreadable drop file %s: %s", path.name, e)
            return None

        task_id = request["task_id"]
        _LOG.info("submitting task %s (%s) from %s", task_id, raw["task_type"], path.name)
        try:
            accepted = self.client.submit(request)
        except InboxRequestError as e:
            _LOG.warning("task from %s rejected (%s): %s", path.name, e.status_code, e)
            return None
        except TransportError as e:
            _LOG.warning("task from %s not delivered: %s", path.name, e)
            return None

        tracking = {
            "task_id": task_id,
            "status": accepted.get("status"),
            "status_url": self.client.status_url(task_id),
            "submitted": request["timestamp"],
            "source_file": path.name,
        }
        atomic_write_json(self.results_dir / f"{path.stem}{TRACKING_SUFFIX}", tracking)
        _LOG.info("accepted: %s", tracking["status_url"])
        return tracking

    def scan(self) -> int:
        """Submit every new drop file. Returns the number accepted."""
        accepted = 0
        for path in self.pending_files():
            try:
                if self.submit_file(path) is not None:
                    accepted += 1
            finally:
                self._mark_processed(path.name)
        return accepted

    def poll_results(self) -> int:
        """Refresh unfinished tracking files. Returns the number that reached a final state."""
        finished = 0
        for path in sorted(self.results_dir.glob(f"*{TRACKING_SUFFIX}")):
            try:
                tracking = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                _LOG.warning("unreadable tracking file %s: %s", path.name, e)
                continue
            if tracking.get("status") in FINAL_STATES:
                continue
            try:
                status = self.client.status(tracking["task_id"])
            except (AIPError, KeyError) as e:
                _LOG.warning("status check for %s failed: %s", path.name, e)
                continue

            if status.get("status") == "completed":
                tracking["status"] = "completed"
                tracking["result"] = status.get("result")
                tracking["receipt"] = status.get("receipt")
            elif status.get("status") == "rejected":
                tracking["status"] = "rejected"
                tracking["rejection"] = status.get("rejection_reason")
            else:
                continue
            tracking["completed"] = utc_now_iso()
            atomic_write_json(path, tracking)
            finished += 1
            _LOG.info("task %s %s", tracking["task_id"], tracking["status"])
        return finished

    def tick(self) -> None:
        self.scan()
        self.poll_results()

    def start(self) -> None:
        _LOG.info("watching %s for %s files", self.tasks_dir, DROP_PATTERN)
        self._periodic.start()

    def stop(self) -> None:
        self._periodic.stop()
