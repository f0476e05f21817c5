"""Tests for the HTTP surface."""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from taskgate.auth.controller import AuthFlowController
from taskgate.auth.models import TokenRecord
from taskgate.core.config import ServerConfig
from taskgate.core.types import AuthStatus
from taskgate.web.app import create_app

from tests.conftest import TASK_IDS, TEST_TOKEN


@pytest.fixture
def client(settings, backend, store):
    app = create_app(settings, backend=backend, store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def authed_client(settings, backend, store):
    controller = AuthFlowController.with_status(
        backend, store, AuthStatus.AUTHENTICATED, token=TEST_TOKEN, username="milkman"
    )
    app = create_app(settings, backend=backend, store=store, controller=controller)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}


class TestStatus:
    def test_forbidden_without_secret(self, client) -> None:
        assert client.get("/status").status_code == 403

    def test_allowed_with_secret(self, settings, backend, store) -> None:
        settings.server = ServerConfig(status_secret="letmein")
        app = create_app(settings, backend=backend, store=store)
        with TestClient(app) as test_client:
            assert test_client.get("/status", headers={"X-Status-Secret": "wrong"}).status_code == 403
            resp = test_client.get("/status", headers={"X-Status-Secret": "letmein"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["server"]["name"] == "taskgate"
        assert body["auth"]["status"] == "unauthenticated"
        assert body["auth"]["token_stored"] is False
        assert "letmein" not in resp.text


class TestLifespan:
    def test_restores_stored_token(self, settings, backend, store) -> None:
        store.save(TokenRecord(token="stored", username="milkman"))
        app = create_app(settings, backend=backend, store=store)
        with TestClient(app) as test_client:
            tools = test_client.get("/mcp/list_tools").json()["tools"]
        assert len(tools) > 1
        assert backend.token == "stored"
        assert backend.closed


class TestProtocol:
    def test_initialize(self, client) -> None:
        resp = client.post(
            "/mcp/initialize", json={"server_name": "assistant", "server_version": "1.0"}
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        body = resp.json()
        assert body["server_info"]["name"] == "taskgate"
        assert body["capabilities"]["tools"]["list"] is True

    def test_initialize_without_body(self, client) -> None:
        assert client.post("/mcp/initialize").status_code == 200

    def test_initialize_malformed_json(self, client) -> None:
        resp = client.post(
            "/mcp/initialize",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["jsonrpc"] == "2.0"
        assert body["error"]["code"] == -32700

    def test_wrong_body_shape(self, client) -> None:
        resp = client.post("/mcp/call_tool", json={"name": "authenticate", "arguments": [1, 2], "id": 5})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"]["code"] == -32600
        assert body["id"] == 5

    def test_unauthenticated_listing(self, client) -> None:
        assert [t["name"] for t in client.get("/mcp/list_tools").json()["tools"]] == ["authenticate"]
        assert [r["name"] for r in client.get("/mcp/list_resources").json()["resources"]] == ["auth://rtm"]

    def test_gated_resource(self, client) -> None:
        resp = client.get("/mcp/read_resource", params={"name": "tasks://all"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == -31000

    def test_missing_resource_name(self, client) -> None:
        resp = client.get("/mcp/read_resource")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == -32602

    def test_full_auth_flow(self, client, store) -> None:
        resp = client.get("/mcp/read_resource", params={"name": "auth://rtm"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["mime_type"] == "text/markdown"
        assert "frob-1" in body["content"]

        resp = client.post(
            "/mcp/call_tool", json={"name": "authenticate", "arguments": {"frob": "frob-1"}}
        )
        assert resp.status_code == 200
        assert "successful" in resp.json()["result"]
        assert len(client.get("/mcp/list_tools").json()["tools"]) == 12
        assert store.load().token == TEST_TOKEN

    def test_stale_frob(self, client) -> None:
        client.get("/mcp/read_resource", params={"name": "auth://rtm"})
        client.get("/mcp/read_resource", params={"name": "auth://rtm"})
        resp = client.post(
            "/mcp/call_tool",
            json={"name": "authenticate", "arguments": {"frob": "frob-1"}, "id": "req-1"},
        )
        assert resp.status_code == 401
        body = resp.json()
        assert body["error"]["data"]["cause"] == "stale_flow"
        assert body["id"] == "req-1"

    def test_complete_task_missing_arguments(self, authed_client) -> None:
        resp = authed_client.post("/mcp/call_tool", json={"name": "complete_task", "arguments": {}})
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == -32602
        assert error["data"]["argument"] == "list_id"

    def test_complete_task(self, authed_client, backend) -> None:
        resp = authed_client.post(
            "/mcp/call_tool", json={"name": "complete_task", "arguments": TASK_IDS}
        )
        assert resp.status_code == 200
        assert resp.json() == {"result": "Task has been marked as completed."}
        assert backend.methods == ["create_timeline", "complete_task"]

    def test_unknown_tool(self, authed_client) -> None:
        resp = authed_client.post("/mcp/call_tool", json={"name": "fly", "arguments": {}})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == -32601

    def test_unknown_resource(self, authed_client) -> None:
        resp = authed_client.get("/mcp/read_resource", params={"name": "tasks://never"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == -31001

    def test_validation_error(self, authed_client) -> None:
        resp = authed_client.post(
            "/mcp/call_tool",
            json={"name": "set_priority", "arguments": {**TASK_IDS, "priority": "urgent"}},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == -31004

    def test_backend_failure(self, authed_client, backend) -> None:
        from taskgate.core.errors import BackendError

        backend.failures["get_lists"] = BackendError("down", {"backend_code": 105})
        resp = authed_client.get("/mcp/read_resource", params={"name": "lists://all"})
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == -31002

    def test_logout_prompt(self, authed_client) -> None:
        resp = authed_client.post(
            "/mcp/call_tool", json={"name": "logout", "arguments": {"confirm": False}}
        )
        assert resp.status_code == 200
        assert "confirm: true" in resp.json()["result"]
        assert len(authed_client.get("/mcp/list_tools").json()["tools"]) == 12

    @pytest.mark.parametrize("path", ["/mcp/list_tools", "/mcp/list_resources", "/status"])
    def test_unexpected_failure_is_enveloped_and_logged_once(
        self, settings, backend, store, monkeypatch, caplog, path
    ) -> None:
        controller = AuthFlowController(backend, store)

        def boom() -> bool:
            raise ZeroDivisionError("boom")

        monkeypatch.setattr(controller, "is_authenticated", boom)
        monkeypatch.setattr(controller, "snapshot", boom)
        settings.server = ServerConfig(status_secret="letmein")
        app = create_app(settings, backend=backend, store=store, controller=controller)
        with TestClient(app, raise_server_exceptions=True) as test_client:
            caplog.clear()
            with caplog.at_level(logging.ERROR):
                resp = test_client.get(path, headers={"X-Status-Secret": "letmein"})

        assert resp.status_code == 500
        body = resp.json()
        assert body["error"]["code"] == -32603
        assert "boom" not in resp.text
        assert len([r for r in caplog.records if r.levelno >= logging.ERROR]) == 1

    @pytest.mark.parametrize(
        "method,path",
        [("GET", "/mcp/call_tool"), ("POST", "/mcp/list_tools"), ("GET", "/mcp/teleport")],
    )
    def test_wrong_method_or_path(self, client, method, path) -> None:
        resp = client.request(method, path)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == -32601
