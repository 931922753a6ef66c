"""NIP-01 event id computation, signing and verification."""

from __future__ import annotations

import hashlib
import json
import time

from coincurve import PublicKeyXOnly

from .keys import NostrKeys


def serialize_event(pubkey: str, created_at: int, kind: int, tags: list, content: str) -> bytes:
    """The NIP-01 commitment ``[0, pubkey, created_at, kind, tags, content]``."""
    payload = [0, pubkey, created_at, kind, tags, content]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_event_id(event: dict) -> str:
    data = serialize_event(
        event["pubkey"], event["created_at"], event["kind"], event["tags"], event["content"]
    )
    return hashlib.sha256(data).hexdigest()


def finalize_event(template: dict, keys: NostrKeys) -> dict:
    """Fill in ``pubkey``, ``id`` and ``sig`` for an event template.

    The template needs ``kind``, ``tags`` and ``content``; ``created_at``
    defaults to now.
    """
    event = {
        "kind": int(template["kind"]),
        "created_at": int(template.get("created_at") or time.time()),
        "tags": [[str(v) for v in tag] for tag in template.get("tags", [])],
        "content": template.get("content", ""),
        "pubkey": keys.public_key_hex,
    }
    event["id"] = compute_event_id(event)
    event["sig"] = keys.sign_schnorr(bytes.fromhex(event["id"])).hex()
    return event


def verify_event(event: dict) -> bool:
    """True if the event id matches its content and the signature is valid."""
    try:
        if compute_event_id(event) != event["id"]:
            return False
        pub = PublicKeyXOnly(bytes.fromhex(event["pubkey"]))
        return pub.verify(bytes.fromhex(event["sig"]), bytes.fromhex(event["id"]))
    except (KeyError, TypeError, ValueError):
        return False


def tag_values(event: dict, name: str) -> list[str]:
    """Second element of every tag named *name*."""
    return [t[1] for t in event.get("tags", []) if len(t) > 1 and t[0] == name]


def first_tag(event: dict, name: str):
    """The whole first tag named *name*, or None."""
    for tag in event.get("tags", []):
        if tag and tag[0] == name:
            return tag
    return None
