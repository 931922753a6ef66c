"""NIP-90 Data Vending Machine bridge.

Job requests (kinds 5000-5999) are converted into inbox-shaped task dicts
and handed to an optional ``handler``. The bridge answers with NIP-90
feedback (kind 7000) and, when the handler produces one, a job result
(request kind + 1000). Without a handler it only acknowledges jobs with
``processing`` feedback; wiring a real executor is left to the operator.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import RelayError
from .event import finalize_event, first_tag, tag_values
from .keys import NostrKeys
from .relay import RelayPool

_LOG = logging.getLogger(__name__)

FEEDBACK_KIND = 7000
HANDLER_INFO_KIND = 31990
SEEN_LIMIT = 10_000

SUPPORTED_KINDS = {
    5050: {"name": "Text Generation", "result_kind": 6050, "task_type": "code.review"},
    5001: {"name": "Summarization", "result_kind": 6001, "task_type": "writing.technical"},
    5000: {"name": "Text Extraction", "result_kind": 6000, "task_type": "data.analysis"},
}

DVM_CAPABILITIES = {
    5050: {
        "description": "Security analysis, code review, vulnerability assessment",
        "pricing": {"amount": 500, "unit": "msats"},
        "params": ["model", "max_tokens", "focus_area"],
    },
}


@dataclass
class JobOutcome:
    """What a handler returns: a result, or an invoice to pay first."""

    result: Optional[str] = None
    bolt11: Optional[str] = None
    amount_msats: Optional[int] = None


def _parse_bid(values: list) -> Optional[int]:
    """First bid tag as a positive msat amount; anything else is no offer."""
    if not values:
        return None
    try:
        amount = int(values[0])
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def job_to_task(event: dict) -> dict:
    """Convert a NIP-90 job request into an inbox-shaped task dict."""
    kind_info = SUPPORTED_KINDS.get(event.get("kind"))
    if kind_info is None:
        raise ValueError(f"unsupported job kind: {event.get('kind')}")
    if not isinstance(event.get("id"), str) or not isinstance(event.get("pubkey"), str):
        raise ValueError("job request needs string id and pubkey")

    inputs = [
        {"data": t[1], "type": t[2] if len(t) > 2 else "text"}
        for t in event.get("tags", [])
        if t and t[0] == "i" and len(t) > 1
    ]
    params = {
        t[1]: t[2]
        for t in event.get("tags", [])
        if t and t[0] == "param" and len(t) > 2
    }
    bid = _parse_bid(tag_values(event, "bid"))
    text_inputs = [i["data"] for i in inputs if i["type"] == "text"]
    description = event.get("content") or "\n".join(text_inputs) or kind_info["name"]

    return {
        "task_id": event["id"],
        "requester_id": event["pubkey"],
        "task_type": kind_info["task_type"],
        "description": description,
        "params": {"dvm_kind": event["kind"], "inputs": inputs, **params},
        "payment_offer": (
            {"amount": bid, "currency": "msats", "type": "lightning"} if bid is not None else None
        ),
        "callback_url": None,
        "deadline": None,
    }


class DVMBridge:
    def __init__(
        self,
        keys: NostrKeys,
        pool: RelayPool,
        handler: Callable[[dict], Optional[JobOutcome]] | None = None,
        name: str = "AIP DVM",
    ):
        self.keys = keys
        self.pool = pool
        self.handler = handler
        self.name = name

    @property
    def pubkey(self) -> str:
        return self.keys.public_key_hex

    def job_filters(self, since: int | None = None) -> list[dict]:
        since = since or int(time.time()) - 60
        kinds = sorted(SUPPORTED_KINDS)
        return [
            {"kinds": kinds, "#p": [self.pubkey], "since": since},
            {"kinds": kinds, "since": since, "limit": 10},
        ]

    def feedback_event(
        self,
        job: dict,
        status: str,
        content: str = "",
        bolt11: str | None = None,
        amount_msats: int = 500,
    ) -> dict:
        tags = [["status", status, content], ["e", job["id"]], ["p", job["pubkey"]]]
        if bolt11:
            tags.append(["amount", str(amount_msats), bolt11])
        return finalize_event({"kind": FEEDBACK_KIND, "tags": tags, "content": content}, self.keys)

    def result_event(
        self,
        job: dict,
        result: str,
        bolt11: str | None = None,
        amount_msats: int = 500,
    ) -> dict:
        kind_info = SUPPORTED_KINDS[job["kind"]]
        tags = [
            ["request", json.dumps(job)],
            ["e", job["id"]],
            ["p", job["pubkey"]],
            *[t for t in job.get("tags", []) if t and t[0] == "i"],
        ]
        if bolt11:
            tags.append(["amount", str(amount_msats), bolt11])
        return finalize_event(
            {"kind": kind_info["result_kind"], "tags": tags, "content": result}, self.keys
        )

    def announcement_events(self) -> list[dict]:
        """NIP-89 handler information, one event per advertised job kind."""
        events = []
        for kind, cap in DVM_CAPABILITIES.items():
            events.append(
                finalize_event(
                    {
                        "kind": HANDLER_INFO_KIND,
                        "tags": [["d", f"aip-dvm-{kind}"], ["k", str(kind)]],
                        "content": json.dumps(
                            {"name": self.name, "about": cap["description"], "pricing": cap["pricing"]}
                        ),
                    },
                    self.keys,
                )
            )
        return events

    def announce(self) -> None:
        for event in self.announcement_events():
            self.pool.publish(event)

    def handle_job_request(self, event: dict) -> list[dict]:
        """Respond to one job request. Returns the events that were published."""
        if event.get("kind") not in SUPPORTED_KINDS:
            return []
        task = job_to_task(event)
        _LOG.info(
            "DVM job %s... kind=%s from %s...",
            event["id"][:12],
            event["kind"],
            event["pubkey"][:16],
        )
        published = [self.feedback_event(event, "processing", "Analyzing request...")]
        if self.handler is not None:
            try:
                outcome = self.handler(task)
            except Exception as e:
                _LOG.exception("DVM handler failed for job %s", event["id"][:12])
                published.append(self.feedback_event(event, "error", str(e)))
                outcome = None
            if outcome is not None and outcome.result is not None:
                published.append(
                    self.result_event(event, outcome.result, outcome.bolt11, outcome.amount_msats or 500)
                )
            elif outcome is not None and outcome.bolt11:
                published.append(
                    self.feedback_event(
                        event, "payment-required", "", outcome.bolt11, outcome.amount_msats or 500
                    )
                )
        for reply in published:
            self.pool.publish(reply)
        return published

    def run(self, stop: threading.Event, relay_url: str | None = None) -> None:
        """Listen on one relay (the pool's first by default) until *stop* is set."""
        url = relay_url or self.pool.urls[0]
        seen: dict[str, None] = {}
        _LOG.info("DVM bridge listening on %s for kinds %s", url, sorted(SUPPORTED_KINDS))
        while not stop.is_set():
            try:
                for event in self.pool.client(url).subscribe(self.job_filters(), stop.is_set):
                    try:
                        if event["id"] in seen or first_tag(event, "status"):
                            continue
                        seen[event["id"]] = None
                        if len(seen) > SEEN_LIMIT:
                            del seen[next(iter(seen))]
                        self.handle_job_request(event)
                    except Exception:
                        _LOG.exception("dropping malformed DVM job from %s", url)
            except RelayError as e:
                _LOG.warning("DVM subscription on %s dropped: %s", url, e)
                stop.wait(5.0)
