"""HTTP surface tests using FastAPI's TestClient."""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from aipnode.canonicaljson import result_hash
from aipnode.config import NodeConfig
from aipnode.errors import IdentityError, InvalidNonceError, OperatorForbiddenError
from aipnode.identity import Identity
from aipnode.message import build_task_request
from aipnode.server import _is_loopback, build_node, create_app, operator_guard

TOKEN = "s3cret-operator-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def client(inbox):
    return TestClient(create_app(inbox, operator_token=TOKEN))


class TestDiscovery:
    def test_well_known_manifest(self, client, inbox):
        resp = client.get("/.well-known/agent.json")
        assert resp.status_code == 200
        assert resp.json()["agent_id"] == inbox.agent_id

    def test_manifest_alias(self, client):
        assert client.get("/manifest").json() == client.get("/.well-known/agent.json").json()

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "online"
        assert body["tasks_total"] == 0
        assert body["uptime"] >= 0


class TestSubmitEndpoint:
    def test_accepts_with_201(self, client, requester):
        req = build_task_request(requester, "research.web", "x")
        resp = client.post("/inbox", json=req)
        assert resp.status_code == 201
        assert resp.json()["status"] == "accepted"

    def test_replay_is_400_invalid_nonce(self, client, requester):
        req = build_task_request(requester, "research.web", "x")
        client.post("/inbox", json=req)
        resp = client.post("/inbox", json=req)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_nonce"

    def test_bad_signature_is_401(self, client, requester):
        req = build_task_request(requester, "research.web", "x")
        req["task_type"] = "code.review"
        resp = client.post("/inbox", json=req)
        assert resp.status_code == 401
        assert resp.json()["error"] == "invalid_signature"

    def test_missing_fields_is_400(self, client):
        resp = client.post("/inbox", json={"task_id": "t"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "missing_fields"

    def test_unknown_capability_is_404_with_supported(self, client, requester):
        resp = client.post("/inbox", json=build_task_request(requester, "cooking.pasta", "x"))
        assert resp.status_code == 404
        assert "research.web" in resp.json()["supported"]

    def test_invalid_json_is_400(self, client):
        resp = client.post("/inbox", content=b"{nope", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "malformed_request"

    def test_rate_limited_is_429(self, client, requester):
        for _ in range(10):
            client.post("/inbox", json=build_task_request(requester, "research.web", "x"))
        resp = client.post("/inbox", json=build_task_request(requester, "research.web", "x"))
        assert resp.status_code == 429
        assert resp.json()["error"] == "rate_limited"


class TestOperatorEndpoints:
    def _submit(self, client, requester):
        req = build_task_request(requester, "research.web", "x")
        client.post("/inbox", json=req)
        return req["task_id"]

    def test_complete_requires_token(self, client, requester):
        task_id = self._submit(client, requester)
        resp = client.post(f"/tasks/{task_id}/complete", json={"result": "done"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized"
        resp = client.post(
            f"/tasks/{task_id}/complete",
            json={"result": "done"},
            headers={"Authorization": "Bearer wrong"},
        )
        assert resp.status_code == 401

    def test_complete_and_status(self, client, requester):
        task_id = self._submit(client, requester)
        resp = client.post(
            f"/tasks/{task_id}/complete", json={"result": {"finding": "none"}}, headers=AUTH
        )
        assert resp.status_code == 200
        assert resp.json()["receipt"]["result_hash"] == result_hash({"finding": "none"})

        status = client.get(f"/tasks/{task_id}/status").json()
        assert status["status"] == "completed"
        assert status["result"] == {"finding": "none"}

    def test_complete_without_result(self, client, requester):
        task_id = self._submit(client, requester)
        resp = client.post(f"/tasks/{task_id}/complete", json={}, headers=AUTH)
        assert resp.status_code == 400
        assert resp.json()["error"] == "missing_result"

    def test_reject_then_complete_conflicts(self, client, requester):
        task_id = self._submit(client, requester)
        resp = client.post(f"/tasks/{task_id}/reject", json={"reason": "spam"}, headers=AUTH)
        assert resp.json() == {"status": "rejected", "task_id": task_id, "reason": "spam"}
        resp = client.post(f"/tasks/{task_id}/complete", json={"result": "x"}, headers=AUTH)
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"

    def test_reject_with_empty_body(self, client, requester):
        task_id = self._submit(client, requester)
        resp = client.post(f"/tasks/{task_id}/reject", headers=AUTH)
        assert resp.json()["reason"] == "No reason given"

    def test_unknown_task_is_404(self, client):
        assert client.get("/tasks/missing/status").status_code == 404
        resp = client.post("/tasks/missing/complete", json={"result": "x"}, headers=AUTH)
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_without_token_only_loopback_allowed(self, inbox, requester):
        client = TestClient(create_app(inbox))
        task_id = self._submit(client, requester)
        resp = client.post(f"/tasks/{task_id}/complete", json={"result": "x"})
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"

    @pytest.mark.parametrize(
        "host, expected",
        [("127.0.0.1", True), ("::1", True), ("localhost", True), ("10.0.0.5", False), ("testclient", False), (None, False)],
    )
    def test_loopback_detection(self, host, expected):
        assert _is_loopback(host) is expected

    def test_loopback_guard_refuses_forwarded_requests(self):
        guard = operator_guard(None)
        direct = SimpleNamespace(client=SimpleNamespace(host="127.0.0.1"), headers={})
        guard(direct, authorization=None)

        for header in ("x-forwarded-for", "forwarded", "x-real-ip"):
            proxied = SimpleNamespace(
                client=SimpleNamespace(host="127.0.0.1"), headers={header: "203.0.113.7"}
            )
            with pytest.raises(OperatorForbiddenError, match="AIP_OPERATOR_TOKEN"):
                guard(proxied, authorization=None)

    def test_token_guard_ignores_forwarding_headers(self):
        guard = operator_guard(TOKEN)
        proxied = SimpleNamespace(
            client=SimpleNamespace(host="127.0.0.1"), headers={"x-forwarded-for": "203.0.113.7"}
        )
        guard(proxied, authorization=f"Bearer {TOKEN}")


class TestListings:
    def test_receipts_and_tasks(self, client, requester):
        req = build_task_request(requester, "research.web", "x")
        client.post("/inbox", json=req)
        client.post(f"/tasks/{req['task_id']}/complete", json={"result": "ok"}, headers=AUTH)

        receipts = client.get("/receipts", params={"task_type": "research.web"}).json()
        assert receipts["total"] == 1
        assert client.get("/receipts", params={"task_type": "code.review"}).json()["total"] == 0

        tasks = client.get("/tasks", params={"status": "completed"}).json()
        assert [t["task_id"] for t in tasks["tasks"]] == [req["task_id"]]

    def test_bad_limit_is_400(self, client):
        resp = client.get("/tasks", params={"limit": "many"})
        assert resp.status_code == 400


class TestBuildNode:
    def test_wires_config(self, tmp_path):
        keys = tmp_path / "agent-keys.json"
        Identity.create(str(keys))
        config = NodeConfig(
            data_dir=tmp_path / "data",
            keys_path=keys,
            manifest_path=tmp_path / "manifest.json",
            rate_max_requests=3,
        )
        inbox = build_node(config)
        assert inbox.agent_id == Identity.load(str(keys)).public_key_base64
        assert inbox.rate_limiter.max_requests == 3
        assert (tmp_path / "manifest.json").exists()
        assert inbox.nonces.path == tmp_path / "data" / "seen-nonces.json"

    def test_missing_keys_mentions_keygen(self, tmp_path):
        config = NodeConfig(data_dir=tmp_path, keys_path=tmp_path / "none.json")
        with pytest.raises(IdentityError, match="keygen"):
            build_node(config)

    def test_lifespan_persists_nonces(self, tmp_path, requester):
        keys = tmp_path / "agent-keys.json"
        Identity.create(str(keys))
        config = NodeConfig(
            data_dir=tmp_path / "data", keys_path=keys, manifest_path=tmp_path / "manifest.json"
        )
        inbox = build_node(config)
        with TestClient(create_app(inbox, config)) as client:
            client.post("/inbox", json=build_task_request(requester, "research.web", "x"))
        assert config.nonce_path.exists()

    def test_restart_restores_nonces_and_window(self, tmp_path, requester):
        keys = tmp_path / "agent-keys.json"
        Identity.create(str(keys))
        config = NodeConfig(
            data_dir=tmp_path / "data",
            keys_path=keys,
            manifest_path=tmp_path / "manifest.json",
            replay_window=120,
        )
        inbox = build_node(config)
        assert inbox.nonces.window == 120
        assert inbox.nonces.path == config.nonce_path

        req = build_task_request(requester, "research.web", "x")
        inbox.submit(req)
        inbox.sweep()

        restarted = build_node(config)
        assert req["nonce"] in restarted.nonces
        with pytest.raises(InvalidNonceError):
            restarted.submit(dict(req))
