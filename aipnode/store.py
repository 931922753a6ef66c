"""File-backed task and receipt storage.

One pretty-printed JSON document per key, ``<directory>/<key>.json``.
Writes replace the whole document atomically (temp file + rename), so a
reader never observes a partially written record.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from .errors import StoreError

_LOG = logging.getLogger(__name__)
_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def is_valid_key(key) -> bool:
    return isinstance(key, str) and bool(_KEY_RE.match(key)) and ".." not in key


def atomic_write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


class JsonDirectoryStore:
    """Directory of JSON documents addressed by a safe string key."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not is_valid_key(key):
            raise StoreError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}.json"

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def get(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise StoreError(f"Corrupt record {path}: {e}") from e

    def put(self, key: str, doc: dict) -> None:
        atomic_write_json(self._path(key), doc)

    def keys(self) -> list[str]:
        return sorted(p.stem for p in self.directory.glob("*.json"))

    def all(self) -> list[dict]:
        """Every readable record. Corrupt files are logged and skipped."""
        docs = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                docs.append(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                _LOG.warning("skipping unreadable record %s: %s", path, e)
        return docs

    def count(self) -> int:
        return sum(1 for _ in self.directory.glob("*.json"))


class TaskStore(JsonDirectoryStore):
    """Task records keyed by ``task_id``. Records are never deleted."""

    def save(self, task: dict) -> None:
        self.put(task["task_id"], task)


class ReceiptStore(JsonDirectoryStore):
    """Standalone receipt records keyed by ``task_id``."""

    def save(self, receipt: dict) -> None:
        self.put(receipt["task_id"], receipt)
