"""Machine-readable error categories for Agent Inbox Protocol failures."""


class AIPError(Exception):
    """Base exception for all AIP node errors."""


class CanonicalizationError(AIPError):
    """JSON canonicalization failed."""


class SignatureError(AIPError):
    """Signature verification failed."""


class IdentityError(AIPError):
    """Identity key loading or generation error."""


class StoreError(AIPError):
    """Invalid store key or unreadable record."""


class ConfigError(AIPError):
    """Invalid node configuration value."""


class InboxError(AIPError):
    """A request was refused by the inbox.

    ``kind`` is the wire error code, ``status_code`` the HTTP status the
    server answers with. ``extra`` is merged into the JSON error body.
    """

    kind = "inbox_error"
    status_code = 400
    default_message = "Request refused"

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, **self.extra}


class MissingFieldsError(InboxError):
    kind = "missing_fields"
    default_message = (
        "Required: task_id, requester_id, task_type, description, "
        "nonce, timestamp, signature"
    )


class MalformedRequestError(InboxError):
    kind = "malformed_request"
    default_message = "Request body is not a valid task request"


class RateLimitedError(InboxError):
    kind = "rate_limited"
    status_code = 429


class InvalidNonceError(InboxError):
    kind = "invalid_nonce"
    default_message = "Nonce already seen or timestamp out of range (±5 minutes)"


class InvalidSignatureError(InboxError):
    kind = "invalid_signature"
    status_code = 401
    default_message = "Signature verification failed"


class CapabilityNotFoundError(InboxError):
    kind = "capability_not_found"
    status_code = 404


class DuplicateTaskError(InboxError):
    kind = "duplicate_task"
    status_code = 409
    default_message = "A task with this task_id already exists"


class TaskNotFoundError(InboxError):
    kind = "not_found"
    status_code = 404
    default_message = "Task not found"


class MissingResultError(InboxError):
    kind = "missing_result"
    default_message = "A result is required to complete a task"


class TaskStateError(InboxError):
    """Task is already in a terminal state."""

    kind = "invalid_state"
    status_code = 409


class OperatorAuthError(InboxError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Operator credentials required"


class OperatorForbiddenError(OperatorAuthError):
    kind = "forbidden"
    status_code = 403
    default_message = "Operator endpoints are only reachable from loopback"


class TransportError(AIPError):
    """Remote inbox transport failure (connection refused, timeout)."""


class InboxRequestError(TransportError):
    """Remote inbox answered with a non-2xx status."""

    def __init__(self, status_code: int, kind: str | None, message: str, body=None):
        self.status_code = status_code
        self.kind = kind
        self.body = body
        super().__init__(f"Inbox rejected request ({status_code}): {message}")


class RelayError(AIPError):
    """Nostr relay refused or failed an operation."""


class PaymentError(AIPError):
    """Lightning wallet service error."""
