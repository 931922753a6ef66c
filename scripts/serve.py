#!/usr/bin/env python3
"""Run the AIP inbox node.

Configuration comes from AIP_* environment variables (see aipnode.config):
    AIP_KEYS_FILE, AIP_MANIFEST_FILE, AIP_DATA_DIR, AIP_HOST, AIP_PORT,
    AIP_OPERATOR_TOKEN, ...

Usage:
    python scripts/serve.py [port]
"""

from __future__ import annotations

import logging
import os
import sys

from aipnode import AIPError, NodeConfig
from aipnode.server import serve


def main() -> int:
    logging.basicConfig(
        level=os.getenv("AIP_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    overrides = {}
    if len(sys.argv) > 1:
        overrides["port"] = int(sys.argv[1])
    try:
        serve(NodeConfig.from_env(**overrides))
    except AIPError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
