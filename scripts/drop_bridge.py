#!/usr/bin/env python3
"""Watch a directory for aip-*.json task files and submit them to an inbox.

Usage:
    python scripts/drop_bridge.py <tasks_dir> [inbox_url]

Results are tracked in <tasks_dir>/results. Environment:
    AIP_KEYS_FILE   – requester keypair (default ./agent-keys.json)
    AIP_DATA_DIR    – where the processed-file list is kept (default ./data)
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from pathlib import Path

from aipnode import AIPError, InboxClient, NodeConfig
from aipnode.dropbox import TaskDropBridge


def main() -> int:
    logging.basicConfig(
        level=os.getenv("AIP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if len(sys.argv) < 2:
        print(__doc__)
        return 2
    tasks_dir = Path(sys.argv[1])
    inbox_url = sys.argv[2] if len(sys.argv) > 2 else "http://localhost:3141"
    config = NodeConfig.from_env()

    try:
        client = InboxClient.from_key_file(inbox_url, str(config.keys_path))
    except AIPError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    bridge = TaskDropBridge(
        client,
        tasks_dir,
        tasks_dir / "results",
        config.data_dir / "drop-processed.json",
    )
    bridge.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        bridge.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
