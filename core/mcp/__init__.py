from core.mcp.server import (
    build_server,
    protocol_server,
    MCPRouteNormalizerASGI,
)
from core.mcp.session_router import (
    MCPSessionHandle,
    SessionRouter,
    session_router,
)

__all__ = [
    "build_server",
    "protocol_server",
    "MCPRouteNormalizerASGI",
    "MCPSessionHandle",
    "SessionRouter",
    "session_router",
]
