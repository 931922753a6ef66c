"""Agent manifest: capability, pricing and discovery advertisement."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from .errors import AIPError
from .store import atomic_write_json
from .types import Manifest

PROTOCOL_VERSION = "0.1"

DEFAULT_RELAYS = [
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
    "wss://relay.primal.net",
]

DEFAULT_CAPABILITIES = [
    ("research.security", "Vulnerability hunting, exploit development, bug bounty research"),
    ("research.web", "Web research and OSINT"),
    ("code.review", "Code auditing and security review"),
    ("code.generate", "Code generation in JS/Python/Rust/Go"),
    ("writing.technical", "Technical documentation and specs"),
    ("writing.creative", "Fiction and creative writing"),
    ("data.analysis", "Data analysis and pattern recognition"),
    ("orchestration.delegate", "Can route tasks to sub-agents"),
]


def default_manifest(
    agent_id: str,
    agent_name: str = "AIP Agent",
    agent_description: str = "Autonomous agent reachable over the Agent Inbox Protocol.",
    inbox_url: str | None = None,
    relays=None,
) -> Manifest:
    return {
        "protocol_version": PROTOCOL_VERSION,
        "agent_id": agent_id,
        "agent_name": agent_name,
        "agent_description": agent_description,
        "capabilities": [
            {"type": t, "description": d, "schema_url": None}
            for t, d in DEFAULT_CAPABILITIES
        ],
        "pricing": {
            "model": "per-task",
            "currency": "sats",
            "min_task_fee": 1000,
            "note": "Pricing varies by task complexity. Submit a request for a quote.",
        },
        "payment_methods": ["lightning"],
        "inbox_url": inbox_url,
        "reputation_url": None,
        "nostr": {"npub": None, "relays": list(relays or DEFAULT_RELAYS)},
        "spam_bond": {
            "amount_sats": 1000,
            "policy": "refunded on accept, burned on reject-as-spam",
        },
        "updated": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def save_manifest(path: str | Path, manifest: dict) -> None:
    atomic_write_json(Path(path), manifest)


def load_manifest(path: str | Path) -> Manifest:
    try:
        manifest = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise AIPError(f"Cannot read manifest {path}: {e}") from e
    if not isinstance(manifest, dict) or not isinstance(manifest.get("capabilities"), list):
        raise AIPError(f"Manifest {path} has no capabilities list")
    return manifest


def load_or_create_manifest(path: str | Path, agent_id: str, **defaults) -> Manifest:
    """Read the manifest at *path*, writing a default one first if absent."""
    p = Path(path)
    if p.exists():
        return load_manifest(p)
    manifest = default_manifest(agent_id, **defaults)
    save_manifest(p, manifest)
    return manifest


def capability_types(manifest: dict) -> list[str]:
    return [c.get("type") for c in manifest.get("capabilities", []) if isinstance(c, dict)]


def supports(manifest: dict, task_type: str) -> bool:
    return task_type in capability_types(manifest)
