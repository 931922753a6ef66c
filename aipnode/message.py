"""Task request and receipt construction, signing, and verification."""

import re
import uuid
from datetime import datetime, timezone

from .canonicaljson import FORM_FIELDS, result_hash
from .errors import AIPError
from .identity import Identity
from .signing import COUNTERSIGN_FIELDS, RECEIPT_FIELDS, REQUEST_FIELDS, sign, verify
from .types import Receipt, TaskRequest

DEFAULT_PAYMENT_OFFER = {"amount": 1000, "currency": "sats", "type": "lightning"}

_FRACTION = re.compile(r"([T ]\d{2}:\d{2}:\d{2})\.(\d+)")


def utc_now_iso(now: datetime | None = None) -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Fractional seconds of any length are accepted (truncated to
    microseconds). Returns ``None`` when *value* is not a parseable string.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    text = _FRACTION.sub(lambda m: f"{m.group(1)}.{(m.group(2) + '00000')[:6]}", text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_task_request(
    identity: Identity,
    task_type: str,
    description: str,
    params: dict | None = None,
    payment_offer: dict | None = None,
    callback_url: str | None = None,
    deadline: str | None = None,
    task_id: str | None = None,
    nonce: str | None = None,
    timestamp: str | None = None,
    form: str = FORM_FIELDS,
) -> TaskRequest:
    """Build and sign a task request.

    Args:
        identity: Requester identity; its public key becomes ``requester_id``.
        task_type: Capability tag, e.g. ``"research.web"``.
        description: Human-readable task description.
        params: Optional capability-specific parameters.
        payment_offer: Optional offer; a 1000-sat Lightning offer if omitted.
        callback_url: Optional URL notified when the task reaches a final state.
        deadline: Optional ISO-8601 deadline.
        task_id: Explicit task id; UUID4 generated if omitted.
        nonce: Explicit nonce; UUID4 generated if omitted.
        timestamp: Explicit creation time; now if omitted.
        form: Canonical form used for the signature.

    Returns:
        A complete signed task request dict.
    """
    message = {
        "task_id": task_id or str(uuid.uuid4()),
        "requester_id": identity.public_key_base64,
        "task_type": task_type,
        "description": description,
        "params": params,
        "payment_offer": payment_offer or dict(DEFAULT_PAYMENT_OFFER),
        "callback_url": callback_url,
        "deadline": deadline,
        "nonce": nonce or str(uuid.uuid4()),
        "timestamp": timestamp or utc_now_iso(),
    }
    message["signature"] = sign(message, identity, REQUEST_FIELDS, form)
    return message


def verify_task_request(request: dict, form: str = FORM_FIELDS) -> bool:
    """True if the request signature verifies against its ``requester_id``."""
    return verify(
        request,
        request.get("signature"),
        request.get("requester_id"),
        REQUEST_FIELDS,
        form,
    )


def build_receipt(
    task: dict,
    identity: Identity,
    result,
    payment_proof: str | None = None,
    completed_at: str | None = None,
    form: str = FORM_FIELDS,
) -> Receipt:
    """Build the agent-signed receipt attesting completion of *task*."""
    receipt = {
        "task_id": task["task_id"],
        "requester_id": task["requester_id"],
        "agent_id": identity.public_key_base64,
        "task_type": task["task_type"],
        "completion_timestamp": completed_at or utc_now_iso(),
        "result_hash": result_hash(result),
        "payment_proof": payment_proof or None,
    }
    receipt["agent_signature"] = sign(receipt, identity, RECEIPT_FIELDS, form)
    return receipt


def verify_receipt(receipt: dict, result=None, form: str = FORM_FIELDS) -> bool:
    """Check the agent signature and, when *result* is given, the result hash.

    A present ``requester_signature`` must verify as well.
    """
    if not verify(
        receipt,
        receipt.get("agent_signature"),
        receipt.get("agent_id"),
        RECEIPT_FIELDS,
        form,
    ):
        return False
    if result is not None:
        try:
            if result_hash(result) != receipt.get("result_hash"):
                return False
        except AIPError:
            return False
    if "requester_signature" in receipt:
        return verify(
            receipt,
            receipt["requester_signature"],
            receipt.get("requester_id"),
            COUNTERSIGN_FIELDS,
            form,
        )
    return True


def countersign_receipt(receipt: dict, identity: Identity, form: str = FORM_FIELDS) -> Receipt:
    """Return a copy of *receipt* with the requester's counter-signature.

    Raises:
        AIPError: If *identity* is not the receipt's requester.
    """
    if identity.public_key_base64 != receipt.get("requester_id"):
        raise AIPError("Only the requester can counter-sign a receipt")
    signed = dict(receipt)
    signed["requester_signature"] = sign(signed, identity, COUNTERSIGN_FIELDS, form)
    return signed
