"""Tests for nonce replay protection."""

import json
from datetime import datetime, timezone

from aipnode.message import utc_now_iso
from aipnode.replay import NonceTracker

NOW = 1_750_000_000.0


def stamp(offset: float = 0.0) -> str:
    return utc_now_iso(datetime.fromtimestamp(NOW + offset, timezone.utc))


class TestCheckAndRecord:
    def test_fresh_nonce_accepted_once(self):
        nonces = NonceTracker(window=300)
        assert nonces.check_and_record("n1", stamp(), NOW)
        assert not nonces.check_and_record("n1", stamp(), NOW + 1)
        assert "n1" in nonces

    def test_stale_timestamp_rejected(self):
        nonces = NonceTracker(window=300)
        assert not nonces.check_and_record("n1", stamp(-301), NOW)
        assert "n1" not in nonces

    def test_future_timestamp_rejected(self):
        nonces = NonceTracker(window=300)
        assert not nonces.check_and_record("n1", stamp(301), NOW)

    def test_edge_of_window_accepted(self):
        nonces = NonceTracker(window=300)
        assert nonces.check_and_record("n1", stamp(-299), NOW)

    def test_unparseable_timestamp_rejected(self):
        nonces = NonceTracker(window=300)
        assert not nonces.check_and_record("n1", "not a time", NOW)
        assert len(nonces) == 0


class TestPrunePersist:
    def test_prune_keeps_entries_for_twice_the_window(self):
        nonces = NonceTracker(window=300)
        nonces.check_and_record("old", stamp(), NOW)
        assert nonces.prune(NOW + 500) == 0
        assert nonces.prune(NOW + 601) == 1
        assert "old" not in nonces

    def test_persist_and_load(self, tmp_path):
        path = tmp_path / "seen-nonces.json"
        nonces = NonceTracker(window=300, path=path)
        nonces.check_and_record("n1", stamp(), NOW)
        nonces.persist()
        assert json.loads(path.read_text()) == [["n1", int(NOW * 1000)]]

        restored = NonceTracker(window=300, path=path)
        assert restored.load() == 1
        assert not restored.check_and_record("n1", stamp(), NOW)

    def test_load_missing_or_corrupt_starts_empty(self, tmp_path):
        path = tmp_path / "seen-nonces.json"
        assert NonceTracker(path=path).load() == 0
        path.write_text("garbage")
        assert NonceTracker(path=path).load() == 0

    def test_sweep_prunes_and_persists(self, tmp_path):
        path = tmp_path / "seen-nonces.json"
        nonces = NonceTracker(window=300, path=path)
        nonces.check_and_record("n1", stamp(), NOW)
        nonces.sweep(NOW + 1000)
        assert json.loads(path.read_text()) == []
