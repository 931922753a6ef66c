"""Tests for the agent manifest."""

import json

import pytest

from aipnode.errors import AIPError
from aipnode.manifest import (
    DEFAULT_RELAYS,
    capability_types,
    default_manifest,
    load_manifest,
    load_or_create_manifest,
    supports,
)


class TestManifest:
    def test_default_shape(self):
        manifest = default_manifest("agent-key", inbox_url="http://x/inbox")
        assert manifest["protocol_version"] == "0.1"
        assert manifest["agent_id"] == "agent-key"
        assert manifest["inbox_url"] == "http://x/inbox"
        assert manifest["payment_methods"] == ["lightning"]
        assert manifest["nostr"] == {"npub": None, "relays": DEFAULT_RELAYS}
        assert len(manifest["capabilities"]) == 8

    def test_capabilities(self):
        manifest = default_manifest("k")
        assert "orchestration.delegate" in capability_types(manifest)
        assert supports(manifest, "code.review")
        assert not supports(manifest, "cooking.pasta")

    def test_load_or_create_writes_once(self, tmp_path):
        path = tmp_path / "manifest.json"
        first = load_or_create_manifest(path, "k1", agent_name="Metatron")
        assert json.loads(path.read_text())["agent_name"] == "Metatron"
        second = load_or_create_manifest(path, "k2")
        assert second["agent_id"] == first["agent_id"] == "k1"

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text('{"agent_id": "k"}')
        with pytest.raises(AIPError, match="capabilities"):
            load_manifest(path)
        path.write_text("{")
        with pytest.raises(AIPError, match="Cannot read"):
            load_manifest(path)
