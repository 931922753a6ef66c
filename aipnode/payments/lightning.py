"""Coinos.io Lightning wallet client.

Coinos sits behind Cloudflare, so the API token has to be obtained through a
browser login and saved with :meth:`CoinosClient.save_token` (or passed via
``AIP_COINOS_TOKEN``).
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import requests

from ..errors import PaymentError
from ..message import utc_now_iso
from ..store import atomic_write_json

_LOG = logging.getLogger(__name__)

COINOS_API = "https://coinos.io/api"
DEFAULT_TOKEN_FILE = "coinos-token.json"
SPAM_BOND_SATS = 1000


class CoinosClient:
    def __init__(
        self,
        token: str | None = None,
        token_path: str | Path | None = None,
        base_url: str = COINOS_API,
        timeout: float = 30,
        session=None,
    ):
        self._token = token or os.getenv("AIP_COINOS_TOKEN") or None
        self._token_path = Path(token_path or os.getenv("AIP_COINOS_TOKEN_FILE") or DEFAULT_TOKEN_FILE)
        self._base = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def token(self) -> str | None:
        if self._token:
            return self._token
        if not self._token_path.exists():
            return None
        try:
            data = json.loads(self._token_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PaymentError(f"Unreadable token file {self._token_path}: {e}") from e
        return data.get("token") if isinstance(data, dict) else None

    def create_invoice(self, amount: int, memo: str = "AIP task payment") -> dict:
        """Create a receiving invoice. The response carries ``hash`` and ``text`` (bolt11)."""
        body = {"invoice": {"amount": amount, "type": "lightning", "memo": memo}}
        return self._request("POST", "/invoice", json=body)

    def get_balance(self) -> dict:
        return self._request("GET", "/me")

    def pay_invoice(self, payreq: str) -> dict:
        return self._request("POST", "/payments", json={"payreq": payreq})

    def check_invoice(self, invoice_hash: str) -> dict:
        return self._request("GET", f"/invoice/{invoice_hash}")

    def verify_payment(self, invoice_hash: str) -> bool:
        """True if the invoice was received. Wallet errors count as unpaid."""
        try:
            data = self.check_invoice(invoice_hash)
        except PaymentError as e:
            _LOG.warning("payment check for %s failed: %s", invoice_hash, e)
            return False
        return bool(data.get("received"))

    def create_spam_bond(self, task_id: str, amount: int = SPAM_BOND_SATS) -> dict:
        invoice = self.create_invoice(amount, f"AIP spam bond: {task_id}")
        return {
            "hash": invoice.get("hash"),
            "bolt11": invoice.get("text") or invoice.get("bolt11"),
            "amount": amount,
        }

    def save_token(self, token: str, path: str | Path | None = None) -> Path:
        target = Path(path) if path else self._token_path
        atomic_write_json(target, {"token": token, "saved": utc_now_iso()})
        self._token = token
        _LOG.info("Coinos token saved to %s", target)
        return target

    # -- internal helpers --

    def _request(self, method: str, path: str, **kwargs) -> dict:
        token = self.token
        if not token:
            raise PaymentError("No Coinos API token; log in via browser and save it first")
        url = f"{self._base}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = self._session.request(method, url, headers=headers, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise PaymentError(f"Coinos {method} {path} failed: {e}") from e
        if not 200 <= resp.status_code < 300:
            raise PaymentError(f"Coinos API error ({resp.status_code}): {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise PaymentError(f"Coinos {method} {path}: invalid JSON response") from e
        if not isinstance(data, dict):
            raise PaymentError(f"Coinos {method} {path}: response is not a JSON object")
        return data
