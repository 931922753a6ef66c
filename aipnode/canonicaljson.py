"""Deterministic JSON serialization for signing and hashing.

Two forms are supported:

``fields``
    A compact JSON object whose top-level members follow a fixed field
    order. Nested values use RFC 8785 rules. When the top-level insertion
    order equals the field list and ``payment_offer`` is flat, this is
    byte-identical to compact ``JSON.stringify`` output, which is what
    JavaScript AIP nodes sign.

``jcs``
    Plain RFC 8785 JSON Canonicalization Scheme over the selected fields.

Delegates to the ``jcs`` library for the RFC 8785 part.
"""

import hashlib
import json

import jcs as _jcs

from .errors import CanonicalizationError

FORM_FIELDS = "fields"
FORM_JCS = "jcs"
FORMS = frozenset({FORM_FIELDS, FORM_JCS})


def canonicalize(obj) -> bytes:
    """Canonicalize a JSON-serializable value to UTF-8 bytes per RFC 8785.

    Raises:
        CanonicalizationError: If the input cannot be canonicalized.
    """
    try:
        return _jcs.canonicalize(obj)
    except Exception as e:
        raise CanonicalizationError(f"Canonicalization failed: {e}") from e


def canonical_bytes(message: dict, fields=None, form: str = FORM_FIELDS) -> bytes:
    """Serialize the signed portion of *message*.

    Args:
        message: The message dict.
        fields: Ordered field names to include. Absent fields are omitted,
            present ``None`` values are kept. ``None`` selects every key.
        form: ``"fields"`` or ``"jcs"``.

    Raises:
        CanonicalizationError: On a non-dict message, an unknown form, or a
            value that is not JSON-serializable.
    """
    if not isinstance(message, dict):
        raise CanonicalizationError("Input must be a JSON object (dict)")
    if form not in FORMS:
        raise CanonicalizationError(f"Unknown canonical form: {form}")

    names = list(message) if fields is None else [f for f in fields if f in message]
    if form == FORM_JCS:
        return canonicalize({name: message[name] for name in names})

    parts = []
    for name in names:
        key = json.dumps(name, ensure_ascii=False)
        parts.append(key.encode("utf-8") + b":" + canonicalize(message[name]))
    return b"{" + b",".join(parts) + b"}"


def result_hash(result) -> str:
    """SHA-256 hex digest of the RFC 8785 form of *result*."""
    return hashlib.sha256(canonicalize(result)).hexdigest()
