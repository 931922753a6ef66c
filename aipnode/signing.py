"""Detached signatures over canonicalized AIP messages."""

import base64
import binascii

from .canonicaljson import FORM_FIELDS, canonical_bytes
from .errors import AIPError
from .identity import Identity

REQUEST_FIELDS = (
    "task_id",
    "requester_id",
    "task_type",
    "description",
    "params",
    "payment_offer",
    "callback_url",
    "deadline",
    "nonce",
    "timestamp",
)

RECEIPT_FIELDS = (
    "task_id",
    "requester_id",
    "agent_id",
    "task_type",
    "completion_timestamp",
    "result_hash",
    "payment_proof",
)

# The requester counter-signs the agent's attestation, signature included.
COUNTERSIGN_FIELDS = RECEIPT_FIELDS + ("agent_signature",)


def sign(message: dict, identity: Identity, fields=None, form: str = FORM_FIELDS) -> str:
    """Return the base64 ed25519 signature over the canonical form of *message*."""
    preimage = canonical_bytes(message, fields, form)
    return base64.b64encode(identity.sign(preimage)).decode("ascii")


def verify(
    message: dict,
    signature: str,
    public_key: str,
    fields=None,
    form: str = FORM_FIELDS,
) -> bool:
    """Check *signature* over *message* against a base64 *public_key*.

    Never raises: malformed base64, wrong key or signature length,
    non-canonicalizable input and mismatches all return ``False``.
    """
    if not isinstance(signature, str) or not isinstance(public_key, str):
        return False
    try:
        sig_bytes = base64.b64decode(signature, validate=True)
        pub_bytes = base64.b64decode(public_key, validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(sig_bytes) != 64 or len(pub_bytes) != 32:
        return False

    try:
        preimage = canonical_bytes(message, fields, form)
        Identity.verify(pub_bytes, sig_bytes, preimage)
    except AIPError:
        return False
    return True
