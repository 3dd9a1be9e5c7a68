"""
NoteGate - multi-tenant sticky notes over MCP.

Runs over stdio (one session for the life of the process) or streamable
HTTP (many sessions through the session router), picked by TRANSPORT_TYPE.
"""

import uuid

import uvicorn

import core.config as config
from core.context import NoteSession, TenantResolver
from core.mcp import build_server


def run_stdio() -> None:
    session = NoteSession.open(uuid.uuid4().hex, TenantResolver(config.PINNED_TENANT_ID))
    session.activate()
    config.logger.info(
        "stdio_session_opened",
        extra={"tenant_id": session.tenant_id, "tenant_source": session.tenant_source},
    )
    build_server(session).run(transport="stdio")


def run_http() -> None:
    config.logger.info("http_server_starting", extra={"host": config.HOST, "port": config.PORT})
    uvicorn.run("app.main:asgi_app", host=config.HOST, port=config.PORT)


def main() -> None:
    config.validate_and_prepare_config()
    if config.TRANSPORT_TYPE == "stdio":
        run_stdio()
    else:
        run_http()


if __name__ == "__main__":
    main()
