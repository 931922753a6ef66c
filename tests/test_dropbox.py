"""Tests for the filesystem task-drop bridge, end to end against the app."""

import json

import pytest
from fastapi.testclient import TestClient

from aipnode.client import InboxClient
from aipnode.dropbox import TaskDropBridge
from aipnode.errors import TransportError
from aipnode.server import create_app

TOKEN = "operator-token"


@pytest.fixture
def http(inbox):
    return TestClient(create_app(inbox, operator_token=TOKEN))


@pytest.fixture
def bridge(tmp_path, http, requester):
    client = InboxClient("http://testserver", identity=requester, session=http)
    return TaskDropBridge(
        client,
        tmp_path / "drop",
        tmp_path / "drop" / "results",
        tmp_path / "processed.json",
    )


def drop(bridge, name, doc):
    path = bridge.tasks_dir / name
    path.write_text(json.dumps(doc) if not isinstance(doc, str) else doc)
    return path


class TestScan:
    def test_submits_and_tracks(self, bridge, inbox):
        drop(bridge, "aip-one.json", {"task_type": "research.web", "description": "find x"})
        assert bridge.scan() == 1

        tracking = json.loads((bridge.results_dir / "aip-one-tracking.json").read_text())
        assert tracking["status"] == "accepted"
        assert tracking["source_file"] == "aip-one.json"
        assert tracking["status_url"].endswith(f"/tasks/{tracking['task_id']}/status")
        assert inbox.status(tracking["task_id"])["status"] == "pending"
        assert json.loads(bridge.processed_path.read_text()) == ["aip-one.json"]

    def test_each_file_submitted_once(self, bridge, inbox):
        drop(bridge, "aip-one.json", {"task_type": "research.web", "description": "find x"})
        bridge.scan()
        assert bridge.scan() == 0
        assert inbox.tasks.count() == 1

    def test_other_files_ignored(self, bridge):
        drop(bridge, "notes.json", {"task_type": "research.web", "description": "x"})
        assert bridge.pending_files() == []

    def test_rejected_and_unreadable_files_marked_processed(self, bridge):
        drop(bridge, "aip-bad-type.json", {"task_type": "cooking.pasta", "description": "x"})
        drop(bridge, "aip-garbage.json", "{nope")
        drop(bridge, "aip-incomplete.json", {"description": "no type"})
        assert bridge.scan() == 0
        assert bridge.is_processed("aip-bad-type.json")
        assert bridge.is_processed("aip-garbage.json")
        assert bridge.is_processed("aip-incomplete.json")
        assert list(bridge.results_dir.glob("*-tracking.json")) == []

    def test_processed_list_survives_restart(self, bridge, tmp_path):
        drop(bridge, "aip-one.json", {"task_type": "research.web", "description": "x"})
        bridge.scan()
        again = TaskDropBridge(bridge.client, bridge.tasks_dir, bridge.results_dir, bridge.processed_path)
        assert again.pending_files() == []


class TestPollResults:
    def _tracked(self, bridge):
        drop(bridge, "aip-one.json", {"task_type": "research.web", "description": "x"})
        bridge.scan()
        path = bridge.results_dir / "aip-one-tracking.json"
        return path, json.loads(path.read_text())["task_id"]

    def test_completion_written_back(self, bridge, inbox):
        path, task_id = self._tracked(bridge)
        assert bridge.poll_results() == 0

        inbox.complete(task_id, {"answer": 42})
        assert bridge.poll_results() == 1
        tracking = json.loads(path.read_text())
        assert tracking["status"] == "completed"
        assert tracking["result"] == {"answer": 42}
        assert tracking["receipt"]["task_id"] == task_id
        assert tracking["completed"]

        assert bridge.poll_results() == 0

    def test_rejection_written_back(self, bridge, inbox):
        path, task_id = self._tracked(bridge)
        inbox.reject(task_id, "out of scope")
        bridge.tick()
        tracking = json.loads(path.read_text())
        assert tracking["status"] == "rejected"
        assert tracking["rejection"] == "out of scope"

    def test_remote_failure_is_logged(self, bridge, monkeypatch, caplog):
        path, _ = self._tracked(bridge)

        def down(task_id):
            raise TransportError("connection refused")

        monkeypatch.setattr(bridge.client, "status", down)
        assert bridge.poll_results() == 0
        assert "status check" in caplog.text
        assert json.loads(path.read_text())["status"] == "accepted"
