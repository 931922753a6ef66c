"""Shared fixtures: an agent inbox on tmp_path and a requester identity."""

import pytest

from aipnode.identity import Identity
from aipnode.inbox import Inbox
from aipnode.manifest import default_manifest
from aipnode.ratelimit import RateLimiter
from aipnode.replay import NonceTracker
from aipnode.store import ReceiptStore, TaskStore


@pytest.fixture
def agent():
    return Identity.generate()


@pytest.fixture
def requester():
    return Identity.generate()


@pytest.fixture
def inbox(tmp_path, agent):
    return Inbox(
        identity=agent,
        manifest=default_manifest(agent.public_key_base64),
        tasks=TaskStore(tmp_path / "tasks"),
        receipts=ReceiptStore(tmp_path / "receipts"),
        nonces=NonceTracker(window=300, path=tmp_path / "seen-nonces.json"),
        rate_limiter=RateLimiter(max_requests=10, window=60),
    )
