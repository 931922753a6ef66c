"""High-level client for talking to an AIP inbox."""

import requests

from .canonicaljson import FORM_FIELDS
from .errors import AIPError, InboxRequestError, TransportError
from .identity import Identity
from .message import build_task_request


class InboxClient:
    """Client for submitting signed tasks to, and querying, a remote inbox.

    ``base_url`` is the node root (``http://host:3141``), not ``/inbox``.
    """

    def __init__(
        self,
        base_url: str,
        identity: Identity | None = None,
        operator_token: str | None = None,
        timeout: float = 30,
        form: str = FORM_FIELDS,
        session=None,
    ):
        if not base_url:
            raise TransportError("An inbox base URL is required")
        base_url = base_url.rstrip("/")
        if base_url.endswith("/inbox"):
            base_url = base_url[: -len("/inbox")]
        self._base = base_url
        self._identity = identity
        self._operator_token = operator_token
        self._timeout = timeout
        self._form = form
        self._session = session or requests.Session()

    @classmethod
    def from_key_file(cls, base_url: str, keys_path: str, **kwargs) -> "InboxClient":
        return cls(base_url, identity=Identity.load(keys_path), **kwargs)

    @property
    def base_url(self) -> str:
        return self._base

    def status_url(self, task_id: str) -> str:
        return f"{self._base}/tasks/{task_id}/status"

    def build_task(self, task_type: str, description: str, **opts) -> dict:
        """Build and sign a task request with this client's identity."""
        if self._identity is None:
            raise AIPError("A signing identity is required to send tasks")
        return build_task_request(self._identity, task_type, description, form=self._form, **opts)

    def send_task(self, task_type: str, description: str, **opts) -> dict:
        """Sign and submit a task request.

        Keyword options are passed to ``build_task_request`` (``params``,
        ``payment_offer``, ``callback_url``, ``deadline``...).

        Returns:
            The inbox acceptance body (``status``, ``task_id``, ``status_url``).
        """
        return self.submit(self.build_task(task_type, description, **opts))

    def submit(self, request: dict) -> dict:
        """Submit a pre-built signed request."""
        return self._request("POST", "/inbox", json=request)

    def status(self, task_id: str) -> dict:
        return self._request("GET", f"/tasks/{task_id}/status")

    def list_tasks(self, status: str | None = None, limit: int | None = None) -> dict:
        return self._request("GET", "/tasks", params=_params(status=status, limit=limit))

    def list_receipts(
        self,
        agent_id: str | None = None,
        task_type: str | None = None,
        limit: int | None = None,
    ) -> dict:
        params = _params(agent_id=agent_id, task_type=task_type, limit=limit)
        return self._request("GET", "/receipts", params=params)

    def manifest(self) -> dict:
        return self._request("GET", "/.well-known/agent.json")

    def health(self) -> dict:
        return self._request("GET", "/health")

    def complete(self, task_id: str, result, payment_proof: str | None = None) -> dict:
        body = {"result": result, "payment_proof": payment_proof}
        return self._request("POST", f"/tasks/{task_id}/complete", json=body, operator=True)

    def reject(self, task_id: str, reason: str | None = None) -> dict:
        return self._request("POST", f"/tasks/{task_id}/reject", json={"reason": reason}, operator=True)

    # -- internal helpers --

    def _request(self, method: str, path: str, operator: bool = False, **kwargs) -> dict:
        url = f"{self._base}{path}"
        headers = {}
        if operator and self._operator_token:
            headers["Authorization"] = f"Bearer {self._operator_token}"
        try:
            resp = self._session.request(
                method, url, headers=headers, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if 200 <= resp.status_code < 300:
            if not isinstance(body, dict):
                raise TransportError(f"{method} {url}: response is not a JSON object")
            return body

        kind = body.get("error") if isinstance(body, dict) else None
        message = body.get("message", kind) if isinstance(body, dict) else resp.text
        raise InboxRequestError(resp.status_code, kind, message or resp.reason, body)


def _params(**kwargs) -> dict:
    return {k: v for k, v in kwargs.items() if v is not None}
