"""Nostr transport: keys, events, relays, discovery, receipts and DVM jobs."""

from .keys import NostrKeys, hex_to_npub, npub_to_hex
from .event import compute_event_id, finalize_event, verify_event
from .relay import PublishResult, RelayClient, RelayPool
from .discovery import discover_agents, manifest_event, publish_manifest
from .receipts import publish_all, publish_receipt, receipt_event
from .dvm import DVMBridge, JobOutcome, SUPPORTED_KINDS, job_to_task

__all__ = [
    "NostrKeys",
    "hex_to_npub",
    "npub_to_hex",
    "compute_event_id",
    "finalize_event",
    "verify_event",
    "PublishResult",
    "RelayClient",
    "RelayPool",
    "discover_agents",
    "manifest_event",
    "publish_manifest",
    "publish_all",
    "publish_receipt",
    "receipt_event",
    "DVMBridge",
    "JobOutcome",
    "SUPPORTED_KINDS",
    "job_to_task",
]
