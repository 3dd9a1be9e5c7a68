from contextlib import asynccontextmanager

import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount
from starlette.testclient import TestClient

from core import log_control
from core.context import SessionState
from core.mcp.session_router import SESSION_HEADER, SessionRouter

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {"protocolVersion": "2025-03-26", "capabilities": {}, "clientInfo": {"name": "test", "version": "0"}},
}
LIST_TOOLS = {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}


class FakeHandle:
    """Stands in for the MCP transport; echoes what it was asked to handle."""

    instances = []

    def __init__(self, session):
        self.session = session
        self.requests = []
        self.closed = False
        self.on_close = None
        FakeHandle.instances.append(self)

    async def start(self, task_group, on_close):
        self.on_close = on_close

    async def handle_request(self, scope, receive, send):
        body = await Request(scope, receive).body()
        self.requests.append((scope["method"], body))
        response = JSONResponse(
            {"jsonrpc": "2.0", "id": 1, "result": {"tenant": self.session.tenant_id}},
            headers={SESSION_HEADER: self.session.session_id},
        )
        await response(scope, receive, send)

    async def close(self):
        self.closed = True


class FailingHandle(FakeHandle):
    async def start(self, task_group, on_close):
        raise RuntimeError("transport failed to start")


def _app(router):
    @asynccontextmanager
    async def lifespan(app):
        async with router.run():
            yield

    return Starlette(routes=[Mount("/mcp", app=router)], lifespan=lifespan)


@pytest.fixture
def router():
    FakeHandle.instances = []
    return SessionRouter(handle_factory=FakeHandle)


@pytest.fixture
def client(router):
    with TestClient(_app(router)) as test_client:
        yield test_client


def _initialize(client, **kwargs):
    response = client.post("/mcp/", json=INITIALIZE, **kwargs)
    assert response.status_code == 200
    return response.headers[SESSION_HEADER]


def test_initialize_creates_usable_session(client, router):
    session_id = _initialize(client)

    assert router.session_count() == 1
    follow_up = client.post("/mcp/", json=LIST_TOOLS, headers={SESSION_HEADER: session_id})
    assert follow_up.status_code == 200

    (handle,) = FakeHandle.instances
    assert [method for method, _ in handle.requests] == ["POST", "POST"]
    assert b'"initialize"' in handle.requests[0][1]
    assert b'"tools/list"' in handle.requests[1][1]
    assert handle.session.state is SessionState.active


def test_each_initialize_gets_its_own_session(client, router):
    first = _initialize(client)
    second = _initialize(client)

    assert first != second
    assert router.session_count() == 2


def test_unknown_session_is_rejected(client, router):
    response = client.post("/mcp/", json=LIST_TOOLS, headers={SESSION_HEADER: "not-a-session"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32000
    assert router.session_count() == 0


def test_missing_session_on_non_initialize_is_rejected(client, router):
    response = client.post("/mcp/", json=LIST_TOOLS)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Bad Request: No valid session ID provided"
    assert FakeHandle.instances == []


def test_initialize_with_unknown_session_does_not_create_one(client, router):
    response = client.post("/mcp/", json=INITIALIZE, headers={SESSION_HEADER: "stale"})

    assert response.status_code == 400
    assert router.session_count() == 0


def test_get_requires_known_session(client):
    response = client.get("/mcp/", headers={SESSION_HEADER: "stale"})

    assert response.status_code == 400


def test_invalid_json_is_parse_error(client):
    response = client.post("/mcp/", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == -32700


def test_unsupported_method(client):
    response = client.put("/mcp/", json=LIST_TOOLS)

    assert response.status_code == 405
    assert "POST" in response.headers["allow"]


def test_delete_closes_session_once(client, router):
    session_id = _initialize(client)
    (handle,) = FakeHandle.instances

    response = client.delete("/mcp/", headers={SESSION_HEADER: session_id})
    assert response.status_code == 200
    assert handle.closed is True
    assert handle.session.state is SessionState.closed
    assert router.session_count() == 0

    again = client.delete("/mcp/", headers={SESSION_HEADER: session_id})
    assert again.status_code == 400
    reused = client.post("/mcp/", json=LIST_TOOLS, headers={SESSION_HEADER: session_id})
    assert reused.status_code == 400


def test_transport_teardown_removes_session(client, router):
    session_id = _initialize(client)
    (handle,) = FakeHandle.instances

    handle.on_close(session_id)
    handle.on_close(session_id)

    assert router.session_count() == 0
    assert client.post("/mcp/", json=LIST_TOOLS, headers={SESSION_HEADER: session_id}).status_code == 400


def test_admin_log_level_without_session(client, router):
    previous = log_control.get_level()
    try:
        response = client.post(
            "/mcp/",
            json={"jsonrpc": "2.0", "id": 7, "method": "logging/setLevel", "params": {"level": "debug"}},
        )
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 7, "result": {"level": "debug"}}

        response = client.post("/mcp/", json={"jsonrpc": "2.0", "id": 8, "method": "logging/getLevel"})
        assert response.json()["result"] == {"level": "debug"}

        response = client.post(
            "/mcp/",
            json={"jsonrpc": "2.0", "id": 9, "method": "logging/setLevel", "params": {"level": "loud"}},
        )
        assert response.json()["error"]["code"] == -32602
        assert log_control.get_level() == "debug"
    finally:
        log_control.set_level(previous)

    assert router.session_count() == 0
    assert FakeHandle.instances == []


def test_tenant_hint_fixed_at_creation(client):
    session_id = _initialize(client, params={"userId": "alice"})
    (handle,) = FakeHandle.instances
    assert handle.session.tenant_id == "alice"
    assert handle.session.tenant_source == "hint"

    response = client.post(
        "/mcp/",
        json=LIST_TOOLS,
        params={"userId": "mallory"},
        headers={SESSION_HEADER: session_id},
    )
    assert response.status_code == 200
    assert response.json()["result"]["tenant"] == "alice"


def test_tenant_hint_from_header(client):
    _initialize(client, headers={"x-mcp-user-id": "bob"})

    (handle,) = FakeHandle.instances
    assert handle.session.tenant_id == "bob"


def test_sessions_without_hint_get_separate_generated_tenants(client):
    _initialize(client)
    _initialize(client)

    first, second = FakeHandle.instances
    assert first.session.tenant_generated and second.session.tenant_generated
    assert first.session.tenant_id != second.session.tenant_id


def test_pinned_tenant_applies_to_every_session():
    FakeHandle.instances = []
    router = SessionRouter(pinned_tenant_id="team", handle_factory=FakeHandle)
    with TestClient(_app(router)) as client:
        _initialize(client)
        _initialize(client)

    assert [handle.session.tenant_id for handle in FakeHandle.instances] == ["team", "team"]


def test_shutdown_closes_every_session():
    FakeHandle.instances = []
    router = SessionRouter(handle_factory=FakeHandle)
    with TestClient(_app(router)) as client:
        _initialize(client)
        _initialize(client)
        assert router.session_count() == 2

    assert router.session_count() == 0
    assert router.running is False
    assert all(handle.closed for handle in FakeHandle.instances)


def test_failed_start_is_not_registered():
    router = SessionRouter(handle_factory=FailingHandle)
    with TestClient(_app(router)) as client:
        response = client.post("/mcp/", json=INITIALIZE)

    assert response.status_code == 500
    assert response.json()["error"]["code"] == -32603
    assert router.session_count() == 0


def test_router_not_running_returns_503(router):
    client = TestClient(Starlette(routes=[Mount("/mcp", app=router)]))

    response = client.post("/mcp/", json=INITIALIZE)
    assert response.status_code == 503
    assert router.session_count() == 0


def test_default_handles_receive_router_renderer(transient_repository):
    from core.context import NoteSession

    renderer = object()
    router = SessionRouter(renderer=renderer, repository=transient_repository)
    handle = router._handle_factory(NoteSession(session_id="sid-r", tenant_id="alice"))

    assert handle.renderer is renderer
    assert handle.session.tenant_id == "alice"
