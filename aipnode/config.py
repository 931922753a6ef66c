"""Node configuration from ``AIP_*`` environment variables.

Environment variables (all overridable via constructor args):
    AIP_DATA_DIR               – task/receipt/nonce storage root (default ./data)
    AIP_KEYS_FILE              – agent keypair document (default ./agent-keys.json)
    AIP_MANIFEST_FILE          – manifest document (default ./manifest.json)
    AIP_HOST / AIP_PORT        – bind address (default 127.0.0.1:3141)
    AIP_OPERATOR_TOKEN         – bearer token for complete/reject; unset means
                                 loopback-only operator access
    AIP_REPLAY_WINDOW          – accepted timestamp skew in seconds (default 300)
    AIP_NONCE_SWEEP_INTERVAL   – nonce prune/persist period (default 30)
    AIP_RATE_WINDOW            – rate-limit window in seconds (default 60)
    AIP_RATE_MAX               – requests per window per requester (default 10)
    AIP_CALLBACK_MAX_ATTEMPTS  – callback attempts before dead-letter (default 5)
    AIP_CALLBACK_BACKOFF       – first retry delay in seconds (default 2)
    AIP_CALLBACK_TIMEOUT       – per-attempt HTTP timeout (default 15)
    AIP_CANONICAL_FORM         – "fields" (reference-compatible) or "jcs"
    AIP_RELAYS                 – comma-separated Nostr relay URLs
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .canonicaljson import FORM_FIELDS, FORMS
from .errors import ConfigError
from .manifest import DEFAULT_RELAYS

_ENV = {
    "data_dir": ("AIP_DATA_DIR", Path),
    "keys_path": ("AIP_KEYS_FILE", Path),
    "manifest_path": ("AIP_MANIFEST_FILE", Path),
    "host": ("AIP_HOST", str),
    "port": ("AIP_PORT", int),
    "operator_token": ("AIP_OPERATOR_TOKEN", str),
    "replay_window": ("AIP_REPLAY_WINDOW", float),
    "nonce_sweep_interval": ("AIP_NONCE_SWEEP_INTERVAL", float),
    "rate_window": ("AIP_RATE_WINDOW", float),
    "rate_max_requests": ("AIP_RATE_MAX", int),
    "callback_max_attempts": ("AIP_CALLBACK_MAX_ATTEMPTS", int),
    "callback_backoff_base": ("AIP_CALLBACK_BACKOFF", float),
    "callback_timeout": ("AIP_CALLBACK_TIMEOUT", float),
    "canonical_form": ("AIP_CANONICAL_FORM", str),
    "relays": ("AIP_RELAYS", lambda v: [u.strip() for u in v.split(",") if u.strip()]),
}


@dataclass
class NodeConfig:
    data_dir: Path = Path("data")
    keys_path: Path = Path("agent-keys.json")
    manifest_path: Path = Path("manifest.json")
    host: str = "127.0.0.1"
    port: int = 3141
    operator_token: Optional[str] = None
    replay_window: float = 300.0
    nonce_sweep_interval: float = 30.0
    rate_window: float = 60.0
    rate_max_requests: int = 10
    callback_max_attempts: int = 5
    callback_backoff_base: float = 2.0
    callback_timeout: float = 15.0
    canonical_form: str = FORM_FIELDS
    relays: list[str] = field(default_factory=lambda: list(DEFAULT_RELAYS))

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.keys_path = Path(self.keys_path)
        self.manifest_path = Path(self.manifest_path)
        if self.canonical_form not in FORMS:
            raise ConfigError(f"canonical_form must be one of {sorted(FORMS)}")
        for name in ("replay_window", "nonce_sweep_interval", "rate_window", "callback_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.rate_max_requests < 1 or self.callback_max_attempts < 1:
            raise ConfigError("rate_max_requests and callback_max_attempts must be >= 1")

    @classmethod
    def from_env(cls, environ=None, **overrides) -> "NodeConfig":
        """Build config from environment variables; keyword args win."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            env_name, convert = _ENV[f.name]
            raw = environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                values[f.name] = convert(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_name}={raw!r}: {e}") from e
        values.update(overrides)
        return cls(**values)

    @property
    def tasks_dir(self) -> Path:
        return self.data_dir / "tasks"

    @property
    def receipts_dir(self) -> Path:
        return self.data_dir / "receipts"

    @property
    def nonce_path(self) -> Path:
        return self.data_dir / "seen-nonces.json"

    @property
    def dead_letter_dir(self) -> Path:
        return self.data_dir / "dead-letters"
