from starlette.testclient import TestClient

from app.main import asgi_app
from core.mcp import session_router

HEADERS = {
    "accept": "application/json, text/event-stream",
    "content-type": "application/json",
}


def _rpc(method, request_id=None, params=None):
    payload = {"jsonrpc": "2.0", "method": method}
    if request_id is not None:
        payload["id"] = request_id
    if params is not None:
        payload["params"] = params
    return payload


def _initialize(client, user_id=None):
    response = client.post(
        "/mcp/",
        json=_rpc(
            "initialize",
            1,
            {
                "protocolVersion": "2025-03-26",
                "capabilities": {},
                "clientInfo": {"name": "notegate-tests", "version": "0.1.0"},
            },
        ),
        headers=HEADERS,
        params={"userId": user_id} if user_id else None,
    )
    assert response.status_code == 200
    assert response.json()["result"]["serverInfo"]["name"] == "NoteGate"
    session_id = response.headers["mcp-session-id"]

    initialized = client.post(
        "/mcp/",
        json=_rpc("notifications/initialized"),
        headers={**HEADERS, "mcp-session-id": session_id},
    )
    assert initialized.status_code == 202
    return session_id


def _call_tool(client, session_id, name, arguments, request_id=2):
    response = client.post(
        "/mcp/",
        json=_rpc("tools/call", request_id, {"name": name, "arguments": arguments}),
        headers={**HEADERS, "mcp-session-id": session_id},
    )
    assert response.status_code == 200
    return response.json()["result"]


def _text(result):
    return "\n".join(item["text"] for item in result["content"] if item["type"] == "text")


def test_session_round_trip_over_http(installed_repository):
    with TestClient(asgi_app) as client:
        session_id = _initialize(client, user_id="alice")
        assert session_router.session_count() == 1

        tools = client.post(
            "/mcp/",
            json=_rpc("tools/list", 2),
            headers={**HEADERS, "mcp-session-id": session_id},
        ).json()["result"]["tools"]
        assert {tool["name"] for tool in tools} == {"addNote", "getNote", "listNotes", "removeNote", "clearNotes"}

        added = _call_tool(client, session_id, "addNote", {"text": "standup at 9", "key": "work"}, 3)
        assert "👤 alice" in _text(added)

        fetched = _call_tool(client, session_id, "getNote", {"key": "work"}, 4)
        assert '"standup at 9"' in _text(fetched)

        closed = client.delete("/mcp/", headers={"mcp-session-id": session_id})
        assert closed.status_code == 200
        assert session_router.session_count() == 0

        stale = client.post(
            "/mcp/",
            json=_rpc("tools/list", 5),
            headers={**HEADERS, "mcp-session-id": session_id},
        )
        assert stale.status_code == 400

    assert installed_repository.get_latest("alice", "work").text == "standup at 9"


def test_sessions_are_isolated_by_tenant(installed_repository):
    with TestClient(asgi_app) as client:
        alice = _initialize(client, user_id="alice")
        bob = _initialize(client, user_id="bob")

        _call_tool(client, alice, "addNote", {"text": "alice only", "key": "secret"})
        missing = _call_tool(client, bob, "getNote", {"key": "secret"})

        assert "No sticky note found" in _text(missing)


class _PngRenderer:
    def render_note(self, key, text, created_at):
        return b"note-png"

    def render_board(self, notes):
        return b"board-png"


def _router_app(router):
    from contextlib import asynccontextmanager

    from starlette.applications import Starlette
    from starlette.routing import Mount

    @asynccontextmanager
    async def lifespan(app):
        async with router.run():
            yield

    return Starlette(routes=[Mount("/mcp", app=router)], lifespan=lifespan)


def test_router_passes_renderer_and_repository_to_sessions(transient_repository):
    from core.mcp import SessionRouter

    router = SessionRouter(renderer=_PngRenderer(), repository=transient_repository)
    with TestClient(_router_app(router)) as client:
        session_id = _initialize(client, user_id="carol")
        assert router.session_count() == 1
        assert router.lookup(session_id).renderer is router.renderer

        added = _call_tool(client, session_id, "addNote", {"text": "with picture", "key": "ideas"})
        assert [item["type"] for item in added["content"]] == ["text", "image"]

    assert router.session_count() == 0
    assert transient_repository.get_latest("carol", "ideas").text == "with picture"
