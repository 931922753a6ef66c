"""FastAPI HTTP surface for an AIP inbox.

Endpoints:
- GET  /.well-known/agent.json, /manifest  -> manifest
- GET  /health                              -> liveness, uptime, counts
- POST /inbox                               -> submit signed task (201)
- GET  /tasks/{id}/status                   -> task status
- POST /tasks/{id}/complete                 -> operator: complete + receipt
- POST /tasks/{id}/reject                   -> operator: reject
- GET  /receipts                            -> reputation query
- GET  /tasks                               -> task list
"""

from __future__ import annotations

import hmac
import ipaddress
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .callbacks import CallbackDispatcher
from .config import NodeConfig
from .errors import InboxError, IdentityError, MalformedRequestError, OperatorAuthError, OperatorForbiddenError
from .identity import Identity
from .inbox import Inbox
from .manifest import load_or_create_manifest
from .periodic import PeriodicTask
from .ratelimit import RateLimiter
from .replay import NonceTracker
from .store import ReceiptStore, TaskStore

_LOG = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024
FORWARDING_HEADERS = ("forwarded", "x-forwarded-for", "x-real-ip")


def build_node(config: NodeConfig) -> Inbox:
    """Wire keys, manifest, stores and trackers from *config* into an Inbox."""
    try:
        identity = Identity.load(str(config.keys_path))
    except IdentityError as e:
        raise IdentityError(f"{e}. Run: python scripts/keygen.py") from e

    manifest = load_or_create_manifest(
        config.manifest_path, identity.public_key_base64, relays=config.relays
    )
    nonces = NonceTracker(window=config.replay_window, path=config.nonce_path)
    loaded = nonces.load()
    if loaded:
        _LOG.info("restored %d nonce(s) from %s", loaded, config.nonce_path)

    callbacks = CallbackDispatcher(
        max_attempts=config.callback_max_attempts,
        backoff_base=config.callback_backoff_base,
        timeout=config.callback_timeout,
        dead_letter_dir=config.dead_letter_dir,
    )
    return Inbox(
        identity=identity,
        manifest=manifest,
        tasks=TaskStore(config.tasks_dir),
        receipts=ReceiptStore(config.receipts_dir),
        nonces=nonces,
        rate_limiter=RateLimiter(config.rate_max_requests, config.rate_window),
        callbacks=callbacks,
        form=config.canonical_form,
    )


def _is_loopback(host: Optional[str]) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def operator_guard(token: Optional[str]):
    """Dependency allowing only the owning operator to move tasks out of pending.

    With a token configured the request must carry ``Authorization: Bearer
    <token>``; without one, only loopback clients are accepted, and requests
    relayed by a proxy (carrying forwarding headers) are refused because the
    proxy itself connects from loopback.
    """
    expected = f"Bearer {token}".encode() if token else None

    def require_operator(request: Request, authorization: Optional[str] = Header(None)):
        if expected is not None:
            if not authorization or not hmac.compare_digest(authorization.encode(), expected):
                raise OperatorAuthError()
            return
        host = request.client.host if request.client else None
        if not _is_loopback(host):
            raise OperatorForbiddenError()
        if any(request.headers.get(name) for name in FORWARDING_HEADERS):
            raise OperatorForbiddenError("Proxied operator requests need AIP_OPERATOR_TOKEN")

    return require_operator


async def _json_body(request: Request) -> dict:
    raw = await request.body()
    if len(raw) > MAX_BODY_BYTES:
        raise MalformedRequestError("Request body too large")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        raise MalformedRequestError("Request body is not valid JSON")
    if not isinstance(data, dict):
        raise MalformedRequestError("Request body must be a JSON object")
    return data


def create_app(
    inbox: Inbox,
    config: NodeConfig | None = None,
    operator_token: Optional[str] = None,
) -> FastAPI:
    """Create the FastAPI application serving *inbox*.

    Background work (nonce sweep, callback delivery) runs for the lifetime
    of the app; nonces are persisted once more on shutdown.
    """
    config = config or NodeConfig()
    token = operator_token if operator_token is not None else config.operator_token
    started = time.monotonic()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = PeriodicTask("state-sweeper", config.nonce_sweep_interval, inbox.sweep)
        sweeper.start()
        if inbox.callbacks is not None:
            inbox.callbacks.start()
        try:
            yield
        finally:
            sweeper.stop()
            if inbox.callbacks is not None:
                inbox.callbacks.stop()
            inbox.sweep()

    app = FastAPI(
        title="AIP Inbox",
        description="Agent Inbox Protocol reference node",
        version=inbox.manifest.get("protocol_version", "0.1"),
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(InboxError)
    async def _inbox_error(request: Request, exc: InboxError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    require_operator = operator_guard(token)

    @app.get("/.well-known/agent.json")
    def well_known_manifest():
        return inbox.manifest

    @app.get("/manifest")
    def manifest():
        return inbox.manifest

    @app.get("/health")
    def health():
        return inbox.health(round(time.monotonic() - started, 3))

    @app.post("/inbox", status_code=201)
    async def submit(request: Request):
        data = await _json_body(request)
        return await run_in_threadpool(inbox.submit, data)

    @app.get("/tasks/{task_id}/status")
    def task_status(task_id: str):
        return inbox.status(task_id)

    @app.post("/tasks/{task_id}/complete", dependencies=[Depends(require_operator)])
    async def complete(task_id: str, request: Request):
        data = await _json_body(request)
        return await run_in_threadpool(
            inbox.complete, task_id, data.get("result"), data.get("payment_proof")
        )

    @app.post("/tasks/{task_id}/reject", dependencies=[Depends(require_operator)])
    async def reject(task_id: str, request: Request):
        data = await _json_body(request)
        return await run_in_threadpool(inbox.reject, task_id, data.get("reason"))

    @app.get("/receipts")
    def receipts(
        agent_id: Optional[str] = None,
        task_type: Optional[str] = None,
        limit: Optional[str] = None,
    ):
        return inbox.list_receipts(agent_id, task_type, limit)

    @app.get("/tasks")
    def tasks(status: Optional[str] = None, limit: Optional[str] = None):
        return inbox.list_tasks(status, limit)

    return app


def serve(config: NodeConfig | None = None) -> None:
    """Build the node from *config* (or the environment) and run uvicorn."""
    import uvicorn

    config = config or NodeConfig.from_env()
    inbox = build_node(config)
    app = create_app(inbox, config)
    _LOG.info(
        "AIP inbox %s on %s:%s (key %s...)",
        inbox.manifest.get("agent_name"),
        config.host,
        config.port,
        inbox.agent_id[:20],
    )
    if not config.operator_token:
        _LOG.warning(
            "no AIP_OPERATOR_TOKEN set: complete/reject accepted only from direct loopback "
            "clients; set a token when running behind a reverse proxy"
        )
    uvicorn.run(app, host=config.host, port=config.port)
