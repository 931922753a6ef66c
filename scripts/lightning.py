#!/usr/bin/env python3
"""Coinos Lightning wallet helper.

Usage:
    python scripts/lightning.py --balance
    python scripts/lightning.py --invoice [sats] [memo]
    python scripts/lightning.py --save-token <token>

The token is read from $AIP_COINOS_TOKEN or coinos-token.json.
"""

from __future__ import annotations

import logging
import os
import sys

from aipnode import PaymentError
from aipnode.payments import CoinosClient


def main() -> int:
    logging.basicConfig(level=os.getenv("AIP_LOG_LEVEL", "INFO").upper())
    cmd = sys.argv[1] if len(sys.argv) > 1 else None
    wallet = CoinosClient()

    try:
        if cmd == "--balance":
            print(f"Balance: {wallet.get_balance().get('balance')}")
        elif cmd == "--invoice":
            amount = int(sys.argv[2]) if len(sys.argv) > 2 else 1000
            memo = sys.argv[3] if len(sys.argv) > 3 else "AIP test invoice"
            invoice = wallet.create_invoice(amount, memo)
            bolt11 = invoice.get("text") or invoice.get("bolt11") or ""
            print("Invoice created:")
            print(f"  Hash:   {invoice.get('hash')}")
            print(f"  BOLT11: {bolt11[:80]}...")
        elif cmd == "--save-token":
            if len(sys.argv) < 3:
                print("Usage: python scripts/lightning.py --save-token <token>")
                return 2
            print(f"Token saved to {wallet.save_token(sys.argv[2])}")
        else:
            print(__doc__)
            print(f"Token status: {'SAVED' if wallet.token else 'MISSING'}")
    except PaymentError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
