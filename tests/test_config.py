"""Tests for environment-driven node configuration."""

from pathlib import Path

import pytest

from aipnode.config import NodeConfig
from aipnode.errors import ConfigError
from aipnode.manifest import DEFAULT_RELAYS


class TestNodeConfig:
    def test_defaults(self):
        config = NodeConfig.from_env({})
        assert config.port == 3141
        assert config.host == "127.0.0.1"
        assert config.operator_token is None
        assert config.canonical_form == "fields"
        assert config.relays == DEFAULT_RELAYS

    def test_derived_paths(self):
        config = NodeConfig(data_dir="/srv/aip")
        assert config.tasks_dir == Path("/srv/aip/tasks")
        assert config.receipts_dir == Path("/srv/aip/receipts")
        assert config.nonce_path == Path("/srv/aip/seen-nonces.json")
        assert config.dead_letter_dir == Path("/srv/aip/dead-letters")

    def test_reads_environment(self):
        env = {
            "AIP_PORT": "8080",
            "AIP_OPERATOR_TOKEN": "tok",
            "AIP_RATE_MAX": "3",
            "AIP_REPLAY_WINDOW": "120",
            "AIP_CANONICAL_FORM": "jcs",
            "AIP_RELAYS": "wss://a.example, wss://b.example,",
        }
        config = NodeConfig.from_env(env)
        assert config.port == 8080
        assert config.operator_token == "tok"
        assert config.rate_max_requests == 3
        assert config.replay_window == 120.0
        assert config.canonical_form == "jcs"
        assert config.relays == ["wss://a.example", "wss://b.example"]

    def test_overrides_win(self):
        assert NodeConfig.from_env({"AIP_PORT": "8080"}, port=9000).port == 9000

    def test_empty_values_ignored(self):
        assert NodeConfig.from_env({"AIP_PORT": ""}).port == 3141

    def test_invalid_number(self):
        with pytest.raises(ConfigError, match="AIP_PORT"):
            NodeConfig.from_env({"AIP_PORT": "eighty"})

    def test_invalid_form(self):
        with pytest.raises(ConfigError, match="canonical_form"):
            NodeConfig.from_env({"AIP_CANONICAL_FORM": "xml"})

    @pytest.mark.parametrize("name", ["AIP_REPLAY_WINDOW", "AIP_RATE_WINDOW", "AIP_CALLBACK_TIMEOUT"])
    def test_non_positive_windows(self, name):
        with pytest.raises(ConfigError):
            NodeConfig.from_env({name: "0"})

    def test_zero_rate_max(self):
        with pytest.raises(ConfigError):
            NodeConfig.from_env({"AIP_RATE_MAX": "0"})
