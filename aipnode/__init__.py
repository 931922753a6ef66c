"""AIP node: Agent Inbox Protocol reference implementation v0.1."""

from .client import InboxClient
from .config import NodeConfig
from .identity import Identity
from .inbox import Inbox
from .message import build_receipt, build_task_request, countersign_receipt, verify_receipt, verify_task_request
from .signing import sign, verify
from .errors import (
    AIPError,
    CanonicalizationError,
    SignatureError,
    IdentityError,
    StoreError,
    ConfigError,
    InboxError,
    TransportError,
    InboxRequestError,
    RelayError,
    PaymentError,
)

__all__ = [
    "InboxClient",
    "NodeConfig",
    "Identity",
    "Inbox",
    "build_task_request",
    "verify_task_request",
    "build_receipt",
    "verify_receipt",
    "countersign_receipt",
    "sign",
    "verify",
    "AIPError",
    "CanonicalizationError",
    "SignatureError",
    "IdentityError",
    "StoreError",
    "ConfigError",
    "InboxError",
    "TransportError",
    "InboxRequestError",
    "RelayError",
    "PaymentError",
]
