"""
Session router for the streamable HTTP transport.

One long-lived transport handle per MCP session id. Handles are registered
before the initialize request is dispatched through them, so a request that
follows immediately always finds its session.
"""

from __future__ import annotations

import json
import threading
import uuid
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl

import anyio
from mcp.server.streamable_http import StreamableHTTPServerTransport

import core.config as config
from core import log_control
from core.context import NoteSession, TenantResolver, tenant_hint_from_request
from core.errors import InvalidSession
from core.mcp.server import build_server, protocol_server
from core.services.note_format import NoteRenderer

SESSION_HEADER = "mcp-session-id"
ALLOWED_METHODS = ("GET", "POST", "DELETE")

# JSON-RPC error codes
PARSE_ERROR = -32700
INTERNAL_ERROR = -32603
BAD_REQUEST = -32000


class MCPSessionHandle:
    """A streamable HTTP transport bound 1:1 to a fresh protocol server."""

    def __init__(
        self,
        session: NoteSession,
        renderer: Optional[NoteRenderer] = None,
        repository=None,
    ):
        self.session = session
        self.renderer = renderer
        self.server = build_server(session, renderer=renderer, repository=repository)
        self.transport = StreamableHTTPServerTransport(
            mcp_session_id=session.session_id,
            is_json_response_enabled=config.JSON_RESPONSE,
        )
        self._cancel_scope: Optional[anyio.CancelScope] = None

    async def start(self, task_group, on_close: Callable[[str], None]) -> None:
        await task_group.start(self._run, on_close)

    async def _run(self, on_close: Callable[[str], None], *, task_status=anyio.TASK_STATUS_IGNORED) -> None:
        app = protocol_server(self.server)
        try:
            with anyio.CancelScope() as scope:
                self._cancel_scope = scope
                async with self.transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    await app.run(
                        read_stream,
                        write_stream,
                        app.create_initialization_options(),
                    )
        except Exception as exc:
            config.logger.error(
                "mcp_session_crashed",
                extra={"session_id": self.session.session_id, "error": str(exc)},
                exc_info=True,
            )
        finally:
            on_close(self.session.session_id)

    async def handle_request(self, scope, receive, send) -> None:
        await self.transport.handle_request(scope, receive, send)

    async def close(self) -> None:
        if not self.transport.is_terminated:
            await self.transport.terminate()
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()


def _header(scope, name: str) -> Optional[str]:
    target = name.encode("latin-1")
    for key, value in scope.get("headers") or []:
        if key.lower() == target:
            return value.decode("latin-1")
    return None


def _request_hint(scope) -> Optional[str]:
    headers = {
        key.decode("latin-1").lower(): value.decode("latin-1")
        for key, value in scope.get("headers") or []
    }
    query = dict(parse_qsl((scope.get("query_string") or b"").decode("latin-1")))
    return tenant_hint_from_request(headers, query)


async def _read_body(receive) -> bytes:
    chunks = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay(body: bytes, receive):
    """Receive callable that yields the buffered body once, then defers to the original."""
    sent = False

    async def replay_receive():
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay_receive


async def _send_json(send, status: int, payload: Any, extra_headers: Optional[list] = None) -> None:
    body = json.dumps(payload).encode("utf-8")
    headers = [
        (b"content-type", b"application/json"),
        (b"content-length", str(len(body)).encode("ascii")),
    ]
    headers.extend(extra_headers or [])
    await send({"type": "http.response.start", "status": status, "headers": headers})
    await send({"type": "http.response.body", "body": body})


def _rpc_error(code: int, message: str, request_id: Any = None) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def _is_initialize(payload: Any) -> bool:
    if isinstance(payload, list):
        return any(_is_initialize(item) for item in payload)
    return isinstance(payload, dict) and payload.get("method") == "initialize"


class SessionRouter:
    """
    Pure ASGI app that routes MCP requests to per-session handles.

    Must be running (``async with router.run():``) to accept sessions; the
    task group it owns hosts every session's protocol server.
    """

    def __init__(
        self,
        pinned_tenant_id: Optional[str] = None,
        handle_factory: Optional[Callable[[NoteSession], Any]] = None,
        renderer: Optional[NoteRenderer] = None,
        repository=None,
    ):
        self.pinned_tenant_id = pinned_tenant_id
        self.renderer = renderer
        self.repository = repository
        self._handle_factory = handle_factory or self._default_handle
        self._sessions: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._task_group = None

    def _default_handle(self, session: NoteSession) -> MCPSessionHandle:
        return MCPSessionHandle(session, renderer=self.renderer, repository=self.repository)

    @property
    def running(self) -> bool:
        return self._task_group is not None

    @asynccontextmanager
    async def run(self):
        async with anyio.create_task_group() as task_group:
            self._task_group = task_group
            config.logger.info("session_router_started")
            try:
                yield self
            finally:
                self._task_group = None
                await self.close_all()
                task_group.cancel_scope.cancel()
                config.logger.info("session_router_stopped")

    # ------------------------------------------------------------------
    # Session table
    # ------------------------------------------------------------------

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def lookup(self, session_id: Optional[str]):
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def _register(self, session_id: str, handle) -> None:
        with self._lock:
            self._sessions[session_id] = handle

    def _forget(self, session_id: str):
        with self._lock:
            handle = self._sessions.pop(session_id, None)
        if handle is not None:
            handle.session.close()
            config.logger.info("mcp_session_closed", extra={"session_id": session_id})
        return handle

    async def close_session(self, session_id: str) -> bool:
        """Tear down a session; closing an unknown or already-closed id is a no-op."""
        handle = self._forget(session_id)
        if handle is None:
            return False
        await handle.close()
        return True

    async def close_all(self) -> None:
        for session_id in self.session_ids():
            await self.close_session(session_id)

    async def open_session(self, hint: Optional[str] = None):
        if self._task_group is None:
            raise RuntimeError("Session router is not running")
        session_id = uuid.uuid4().hex
        session = NoteSession.open(session_id, TenantResolver(self.pinned_tenant_id), hint)
        handle = self._handle_factory(session)
        self._register(session_id, handle)
        try:
            await handle.start(self._task_group, self._forget)
        except BaseException:
            self._forget(session_id)
            raise
        session.activate()
        config.logger.info(
            "mcp_session_opened",
            extra={
                "session_id": session_id,
                "tenant_id": session.tenant_id,
                "tenant_source": session.tenant_source,
            },
        )
        return handle

    # ------------------------------------------------------------------
    # ASGI entry
    # ------------------------------------------------------------------

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            return

        method = scope.get("method", "GET").upper()
        if method not in ALLOWED_METHODS:
            await _send_json(
                send,
                405,
                _rpc_error(BAD_REQUEST, "Method not allowed"),
                extra_headers=[(b"allow", ", ".join(ALLOWED_METHODS).encode("ascii"))],
            )
            return

        if not self.running:
            await _send_json(send, 503, _rpc_error(INTERNAL_ERROR, "Session router is not running"))
            return

        response_started = False

        async def tracking_send(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self._dispatch(method, scope, receive, tracking_send)
        except Exception as exc:
            config.logger.error(
                "mcp_request_failed",
                extra={"method": method, "error": str(exc)},
                exc_info=True,
            )
            if not response_started:
                await _send_json(send, 500, _rpc_error(INTERNAL_ERROR, "Internal server error"))

    async def _dispatch(self, method: str, scope, receive, send) -> None:
        session_id = _header(scope, SESSION_HEADER)

        if method == "POST":
            body = await _read_body(receive)
            try:
                payload = json.loads(body) if body else None
            except ValueError:
                await _send_json(send, 400, _rpc_error(PARSE_ERROR, "Parse error"))
                return

            admin_response = log_control.handle_admin_request(payload)
            if admin_response is not None:
                await _send_json(send, 200, admin_response)
                return

            receive = _replay(body, receive)
            handle = self.lookup(session_id)
            if handle is None and not session_id and _is_initialize(payload):
                handle = await self.open_session(_request_hint(scope))
            if handle is None:
                await self._reject(send, session_id)
                return
            self._check_hint(handle, scope)
            await handle.handle_request(scope, receive, send)
            return

        handle = self.lookup(session_id)
        if handle is None:
            await self._reject(send, session_id)
            return
        self._check_hint(handle, scope)
        await handle.handle_request(scope, receive, send)
        if method == "DELETE":
            await self.close_session(session_id)

    async def _reject(self, send, session_id: Optional[str]) -> None:
        if session_id:
            config.logger.info("mcp_unknown_session", extra={"session_id": session_id})
        error = InvalidSession(session_id, "Bad Request: No valid session ID provided")
        await _send_json(send, 400, _rpc_error(BAD_REQUEST, str(error)))

    def _check_hint(self, handle, scope) -> None:
        hint = _request_hint(scope)
        if hint and hint != handle.session.tenant_id:
            config.logger.warning(
                "tenant_hint_ignored",
                extra={"session_id": handle.session.session_id, "tenant_id": handle.session.tenant_id, "hint": hint},
            )


session_router = SessionRouter(pinned_tenant_id=config.PINNED_TENANT_ID)
