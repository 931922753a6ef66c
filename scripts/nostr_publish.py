#!/usr/bin/env python3
"""Nostr operations for an AIP agent.

Usage:
    python scripts/nostr_publish.py                       publish the manifest
    python scripts/nostr_publish.py --generate-key        create nostr-keys.json
    python scripts/nostr_publish.py --discover            list AIP agents on the relays
    python scripts/nostr_publish.py --publish-receipts    publish every stored receipt
    python scripts/nostr_publish.py --longform <file.md> <title>

The Nostr key file is $AIP_NOSTR_KEYS_FILE (default ./nostr-keys.json).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from aipnode import AIPError, Identity, NodeConfig
from aipnode.manifest import load_or_create_manifest
from aipnode.nostr import NostrKeys, RelayPool, discover_agents, publish_all, publish_manifest
from aipnode.nostr.discovery import longform_event
from aipnode.store import ReceiptStore


def main() -> int:
    logging.basicConfig(level=os.getenv("AIP_LOG_LEVEL", "INFO").upper())
    cmd = sys.argv[1] if len(sys.argv) > 1 else None
    config = NodeConfig.from_env()
    keys_path = Path(os.getenv("AIP_NOSTR_KEYS_FILE", "nostr-keys.json"))
    pool = RelayPool(config.relays)

    try:
        if cmd == "--generate-key":
            keys = NostrKeys.load_or_create(keys_path)
            print(f"npub: {keys.npub}")
            return 0

        keys = NostrKeys.load(keys_path)

        if cmd == "--discover":
            agents = discover_agents(pool)
            print(f"Found {len(agents)} AIP agent(s):")
            for agent in agents:
                print(f"  {agent['name']}  {agent['npub']}")
                print(f"    inbox: {agent['inbox_url']}  capabilities: {', '.join(agent['capabilities'])}")
            return 0

        if cmd == "--publish-receipts":
            results = publish_all(ReceiptStore(config.receipts_dir), keys, pool)
            ok = sum(1 for r in results if r.ok)
            print(f"Published {ok}/{len(results)} receipt(s)")
            return 0

        if cmd == "--longform":
            if len(sys.argv) < 4:
                print(__doc__)
                return 2
            content = Path(sys.argv[2]).read_text(encoding="utf-8")
            event = longform_event(content, keys, identifier=Path(sys.argv[2]).stem, title=sys.argv[3])
            result = pool.publish(event)
            print(f"Article {event['id']} published to {result.succeeded}/{result.attempted} relays")
            return 0 if result.ok else 1

        if cmd is not None:
            print(__doc__)
            return 2

        identity = Identity.load(str(config.keys_path))
        manifest = load_or_create_manifest(config.manifest_path, identity.public_key_base64)
        event, result = publish_manifest(
            manifest,
            keys,
            pool,
            manifest_path=config.manifest_path,
            last_event_path=config.data_dir / "nostr-last-event.json",
        )
        print(f"Manifest {event['id']} published to {result.succeeded}/{result.attempted} relays")
        print(f"npub: {keys.npub}")
        return 0 if result.ok else 1
    except AIPError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
