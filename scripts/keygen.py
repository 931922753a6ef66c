#!/usr/bin/env python3
"""Generate the Ed25519 keypair that identifies this agent.

Usage:
    python scripts/keygen.py [path]      (default: $AIP_KEYS_FILE or ./agent-keys.json)

Refuses to overwrite an existing key file.
"""

from __future__ import annotations

import logging
import os
import sys

from aipnode import Identity, IdentityError


def main() -> int:
    logging.basicConfig(level=os.getenv("AIP_LOG_LEVEL", "INFO").upper())
    path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("AIP_KEYS_FILE", "agent-keys.json")
    try:
        identity = Identity.create(path)
    except IdentityError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print("Agent keypair generated:")
    print(f"  Public Key: {identity.public_key_base64}")
    print(f"  Saved to:   {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
