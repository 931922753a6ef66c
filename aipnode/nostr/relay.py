"""Minimal NIP-01 relay transport over WebSockets.

Each operation opens its own connection. ``RelayPool`` fans an operation
out to several relays; a failing relay is logged and counted, never fatal
for the others.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterator

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from ..errors import RelayError

_LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class RelayClient:
    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout

    def _connect(self):
        try:
            return connect(self.url, open_timeout=self.timeout, close_timeout=1)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise RelayError(f"{self.url}: connect failed: {e}") from e

    @staticmethod
    def _recv(ws, deadline: float):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError
        raw = ws.recv(timeout=remaining)
        try:
            msg = json.loads(raw)
        except ValueError:
            return None
        return msg if isinstance(msg, list) and msg else None

    def publish(self, event: dict) -> None:
        """Send an EVENT and wait for the relay's OK.

        Raises:
            RelayError: On connection failure, refusal or timeout.
        """
        deadline = time.monotonic() + self.timeout
        with self._connect() as ws:
            try:
                ws.send(json.dumps(["EVENT", event]))
                while True:
                    msg = self._recv(ws, deadline)
                    if msg is None:
                        continue
                    if msg[0] == "OK" and len(msg) >= 3 and msg[1] == event["id"]:
                        if msg[2]:
                            return
                        reason = msg[3] if len(msg) > 3 else "rejected"
                        raise RelayError(f"{self.url}: {reason}")
                    if msg[0] == "NOTICE":
                        _LOG.info("%s notice: %s", self.url, msg[1:])
            except TimeoutError:
                raise RelayError(f"{self.url}: no OK within {self.timeout}s") from None
            except WebSocketException as e:
                raise RelayError(f"{self.url}: {e}") from e

    def query(self, filters: list[dict], timeout: float | None = None) -> list[dict]:
        """Collect stored events matching *filters* until EOSE or timeout."""
        sub_id = uuid.uuid4().hex[:16]
        deadline = time.monotonic() + (timeout or self.timeout)
        events: list[dict] = []
        with self._connect() as ws:
            try:
                ws.send(json.dumps(["REQ", sub_id, *filters]))
                while True:
                    msg = self._recv(ws, deadline)
                    if msg is None or len(msg) < 2 or msg[1] != sub_id:
                        continue
                    if msg[0] == "EVENT" and len(msg) > 2:
                        events.append(msg[2])
                    elif msg[0] in ("EOSE", "CLOSED"):
                        break
                ws.send(json.dumps(["CLOSE", sub_id]))
            except TimeoutError:
                _LOG.debug("%s: query timed out with %d event(s)", self.url, len(events))
            except WebSocketException as e:
                raise RelayError(f"{self.url}: {e}") from e
        return events

    def subscribe(self, filters: list[dict], should_stop: Callable[[], bool]) -> Iterator[dict]:
        """Yield live events matching *filters* until ``should_stop()`` is true."""
        sub_id = uuid.uuid4().hex[:16]
        with self._connect() as ws:
            ws.send(json.dumps(["REQ", sub_id, *filters]))
            while not should_stop():
                try:
                    msg = self._recv(ws, time.monotonic() + 1.0)
                except TimeoutError:
                    continue
                except WebSocketException as e:
                    raise RelayError(f"{self.url}: {e}") from e
                if msg and msg[0] == "EVENT" and len(msg) > 2 and msg[1] == sub_id:
                    yield msg[2]


@dataclass
class PublishResult:
    event_id: str
    attempted: int = 0
    succeeded: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.succeeded > 0


class RelayPool:
    def __init__(self, urls, timeout: float = DEFAULT_TIMEOUT, client_factory=RelayClient):
        self.urls = list(urls)
        self.timeout = timeout
        self._factory = client_factory

    def client(self, url: str):
        return self._factory(url, self.timeout)

    def publish(self, event: dict) -> PublishResult:
        result = PublishResult(event_id=event["id"])
        for url in self.urls:
            result.attempted += 1
            try:
                self.client(url).publish(event)
            except RelayError as e:
                result.errors[url] = str(e)
                _LOG.warning("publish to %s failed: %s", url, e)
                continue
            result.succeeded += 1
            _LOG.info("published %s... to %s", event["id"][:12], url)
        _LOG.info(
            "event %s... published to %d/%d relays",
            event["id"][:12],
            result.succeeded,
            result.attempted,
        )
        return result

    def collect(self, filters: list[dict]) -> dict[str, list[dict]]:
        """Per-relay query results; failing relays map to an empty list."""
        results: dict[str, list[dict]] = {}
        for url in self.urls:
            try:
                results[url] = self.client(url).query(filters)
            except RelayError as e:
                _LOG.warning("query on %s failed: %s", url, e)
                results[url] = []
        return results

    def query(self, filters: list[dict]) -> list[dict]:
        """Events from every relay, deduplicated by id."""
        seen: dict[str, dict] = {}
        for events in self.collect(filters).values():
            for event in events:
                if isinstance(event, dict) and "id" in event:
                    seen.setdefault(event["id"], event)
        return list(seen.values())
