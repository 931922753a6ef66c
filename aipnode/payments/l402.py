"""L402-style Lightning payments for AIP tasks.

Flow: a task is accepted, an invoice is created for it, the requester pays,
and the payment is confirmed by checking the invoice. Payment state lives in
the bridge only; the inbox task record is never modified from here.
"""

from __future__ import annotations

import logging
import threading
import time

from ..errors import PaymentError
from .lightning import CoinosClient

_LOG = logging.getLogger(__name__)

TASK_PRICES = {
    "research.security": 500,
    "research.web": 100,
    "code.generate": 300,
    "code.review": 200,
    "writing.technical": 250,
    "writing.creative": 150,
    "data.analysis": 200,
    "orchestration.delegate": 50,
}


class L402Bridge:
    def __init__(self, wallet: CoinosClient, default_price: int = 100, max_price: int = 10000):
        self.wallet = wallet
        self.default_price = default_price
        self.max_price = max_price
        self._pending: dict[str, dict] = {}
        self._lock = threading.Lock()

    def create_task_payment(self, task_id: str, amount: int, description: str) -> dict:
        """Create an invoice for *task_id*.

        Raises:
            PaymentError: If *amount* exceeds ``max_price`` or the wallet fails.
        """
        if amount > self.max_price:
            raise PaymentError(f"Amount {amount} exceeds max price {self.max_price}")
        if amount <= 0:
            raise PaymentError(f"Amount must be positive, got {amount}")

        invoice = self.wallet.create_invoice(amount, f"AIP Task: {description}")
        bolt11 = invoice.get("bolt11") or invoice.get("text")
        invoice_id = invoice.get("id") or invoice.get("hash")
        if not bolt11 or not invoice_id:
            raise PaymentError("Wallet returned an invoice without bolt11 or id")

        with self._lock:
            self._pending[task_id] = {
                "invoice_id": invoice_id,
                "amount": amount,
                "bolt11": bolt11,
                "status": "pending",
                "created_at": time.time(),
            }
        _LOG.info("invoice for task %s: %d sats", task_id, amount)
        return {
            "task_id": task_id,
            "amount": amount,
            "bolt11": bolt11,
            "invoice_id": invoice_id,
            "l402_challenge": f'L402 invoice="{bolt11}", macaroon="aip-task-{task_id}"',
        }

    def check_task_payment(self, task_id: str) -> dict:
        with self._lock:
            payment = self._pending.get(task_id)
        if payment is None:
            return {"status": "not_found"}
        if payment["status"] == "paid":
            return {
                "status": "paid",
                "amount": payment["amount"],
                "preimage": payment.get("preimage"),
                "paid_at": payment["paid_at"],
            }

        invoice = self.wallet.check_invoice(payment["invoice_id"])
        if invoice.get("paid") or invoice.get("status") == "paid" or invoice.get("received"):
            with self._lock:
                payment["status"] = "paid"
                payment["paid_at"] = time.time()
                payment["preimage"] = invoice.get("preimage")
            _LOG.info("task %s paid (%d sats)", task_id, payment["amount"])
            return {
                "status": "paid",
                "amount": payment["amount"],
                "preimage": payment["preimage"],
                "paid_at": payment["paid_at"],
            }
        return {"status": "pending", "amount": payment["amount"], "bolt11": payment["bolt11"]}

    def get_task_price(self, capability: str) -> int:
        return TASK_PRICES.get(capability, self.default_price)

    @staticmethod
    def challenge_headers(task_id: str, bolt11: str) -> dict:
        """Headers for an HTTP 402 Payment Required response."""
        return {
            "WWW-Authenticate": f'L402 macaroon="aip-{task_id}", invoice="{bolt11}"',
            "Content-Type": "application/json",
        }
