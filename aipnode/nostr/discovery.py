"""Publish the agent manifest to Nostr and discover other AIP agents.

The manifest is an application-specific parameterized replaceable event
(kind 30078, ``d=aip-manifest``), so republishing replaces the previous
advertisement on every relay.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from ..manifest import capability_types, save_manifest
from ..store import atomic_write_json
from .event import finalize_event, verify_event
from .keys import NostrKeys, hex_to_npub
from .relay import PublishResult, RelayPool

_LOG = logging.getLogger(__name__)

MANIFEST_KIND = 30078
LONGFORM_KIND = 30023
MANIFEST_D_TAG = "aip-manifest"
MESH_TAG = "agent-mesh"
# Latest accepted advertisement time, 9999-12-31 UTC.
MAX_CREATED_AT = 253402300799
DEFAULT_INBOX_URL = "http://localhost:3141/inbox"


def manifest_event(manifest: dict, keys: NostrKeys, created_at: int | None = None) -> dict:
    tags = [
        ["d", MANIFEST_D_TAG],
        ["t", MESH_TAG],
        ["t", "aip"],
        *(["t", cap] for cap in capability_types(manifest)),
        ["r", manifest.get("inbox_url") or DEFAULT_INBOX_URL],
        ["name", manifest.get("agent_name") or ""],
        ["description", manifest.get("agent_description") or ""],
    ]
    return finalize_event(
        {
            "kind": MANIFEST_KIND,
            "created_at": created_at or int(time.time()),
            "tags": tags,
            "content": json.dumps(manifest),
        },
        keys,
    )


def publish_manifest(
    manifest: dict,
    keys: NostrKeys,
    pool: RelayPool,
    manifest_path: str | Path | None = None,
    last_event_path: str | Path | None = None,
) -> tuple[dict, PublishResult]:
    """Stamp the Nostr identity into *manifest* and publish it.

    The updated manifest is saved to *manifest_path* and the signed event to
    *last_event_path* when given.
    """
    nostr = dict(manifest.get("nostr") or {})
    nostr["npub"] = keys.npub
    nostr["relays"] = list(pool.urls)
    manifest["nostr"] = nostr
    if manifest_path:
        save_manifest(manifest_path, manifest)

    event = manifest_event(manifest, keys)
    result = pool.publish(event)
    if last_event_path:
        atomic_write_json(Path(last_event_path), event)
    return event, result


def agent_from_event(event: dict, relay: str | None = None) -> dict | None:
    """Summarize a manifest event, or None if it is not a valid one."""
    if not verify_event(event):
        return None
    try:
        manifest = json.loads(event["content"])
    except (TypeError, ValueError):
        return None
    if not isinstance(manifest, dict):
        return None
    created_at = event.get("created_at")
    if isinstance(created_at, bool) or not isinstance(created_at, int):
        return None
    if not 0 <= created_at <= MAX_CREATED_AT:
        return None
    try:
        updated = datetime.fromtimestamp(created_at, timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return None
    return {
        "pubkey": event["pubkey"],
        "npub": hex_to_npub(event["pubkey"]),
        "name": manifest.get("agent_name"),
        "agent_id": manifest.get("agent_id"),
        "capabilities": capability_types(manifest),
        "inbox_url": manifest.get("inbox_url"),
        "relay": relay,
        "created_at": created_at,
        "updated": updated,
    }


def discover_agents(pool: RelayPool, limit: int = 50) -> list[dict]:
    """Find AIP agents on the pool's relays, newest advertisement per publisher."""
    filters = [{"kinds": [MANIFEST_KIND], "#t": [MESH_TAG], "limit": limit}]
    agents: dict[str, dict] = {}
    for relay, events in pool.collect(filters).items():
        for event in events:
            agent = agent_from_event(event, relay)
            if agent is None:
                _LOG.debug("skipping invalid manifest event from %s", relay)
                continue
            current = agents.get(agent["pubkey"])
            if current is None or agent["created_at"] > current["created_at"]:
                agents[agent["pubkey"]] = agent
    return sorted(agents.values(), key=lambda a: a["created_at"], reverse=True)


def longform_event(
    content: str,
    keys: NostrKeys,
    identifier: str,
    title: str,
    summary: str = "",
    topics=("agent-mesh", "aip"),
    reference_url: str | None = None,
) -> dict:
    """NIP-23 long-form article, e.g. for publishing the protocol document."""
    now = int(time.time())
    tags = [
        ["d", identifier],
        ["title", title],
        ["summary", summary],
        ["published_at", str(now)],
        *(["t", t] for t in topics),
    ]
    if reference_url:
        tags.append(["r", reference_url])
    return finalize_event(
        {"kind": LONGFORM_KIND, "created_at": now, "tags": tags, "content": content},
        keys,
    )
