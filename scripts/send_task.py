#!/usr/bin/env python3
"""Sign and send a task to a remote AIP inbox, then print its status URL.

Usage:
    python scripts/send_task.py <inbox_url> <task_type> <description...>

Example:
    python scripts/send_task.py http://localhost:3141/inbox research.web "Summarize RFC 8785"

Uses the keypair at $AIP_KEYS_FILE (default ./agent-keys.json).
"""

from __future__ import annotations

import json
import logging
import os
import sys

from aipnode import AIPError, InboxClient


def main() -> int:
    logging.basicConfig(level=os.getenv("AIP_LOG_LEVEL", "INFO").upper())
    if len(sys.argv) < 4:
        print(__doc__)
        return 2
    inbox_url, task_type = sys.argv[1], sys.argv[2]
    description = " ".join(sys.argv[3:])
    keys_path = os.getenv("AIP_KEYS_FILE", "agent-keys.json")

    try:
        client = InboxClient.from_key_file(inbox_url, keys_path)
        accepted = client.send_task(task_type, description)
    except AIPError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(accepted, indent=2))
    print(f"Status: {client.status_url(accepted['task_id'])}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
