"""Publish task receipts to Nostr for public reputation.

Each receipt is a replaceable event keyed ``d=aip-receipt-<task_id>`` and
dated at its completion time, so republishing a receipt yields the same
event id and replaces rather than duplicates it.
"""

from __future__ import annotations

import json
import logging

from ..message import parse_timestamp
from ..store import ReceiptStore
from .event import finalize_event
from .keys import NostrKeys
from .relay import PublishResult, RelayPool

_LOG = logging.getLogger(__name__)

RECEIPT_KIND = 30079
RECEIPT_TAG = "aip-receipt"


def receipt_event(receipt: dict, keys: NostrKeys) -> dict:
    completed = parse_timestamp(receipt.get("completion_timestamp"))
    if completed is None:
        raise ValueError(f"receipt {receipt.get('task_id')} has no valid completion_timestamp")
    return finalize_event(
        {
            "kind": RECEIPT_KIND,
            "created_at": int(completed.timestamp()),
            "tags": [
                ["d", f"{RECEIPT_TAG}-{receipt['task_id']}"],
                ["t", RECEIPT_TAG],
                ["t", receipt["task_type"]],
                ["task_id", receipt["task_id"]],
                ["result_hash", receipt["result_hash"]],
                ["payment_proof", receipt.get("payment_proof") or "none"],
            ],
            "content": json.dumps(receipt, sort_keys=True),
        },
        keys,
    )


def publish_receipt(receipt: dict, keys: NostrKeys, pool: RelayPool) -> PublishResult:
    _LOG.info("publishing receipt for task %s", receipt["task_id"])
    return pool.publish(receipt_event(receipt, keys))


def publish_all(receipts: ReceiptStore, keys: NostrKeys, pool: RelayPool) -> list[PublishResult]:
    results = []
    for receipt in receipts.all():
        try:
            results.append(publish_receipt(receipt, keys, pool))
        except (KeyError, ValueError) as e:
            _LOG.warning("skipping malformed receipt %s: %s", receipt.get("task_id"), e)
    return results
