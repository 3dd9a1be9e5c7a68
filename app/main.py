"""
Standalone FastAPI app wiring for NoteGate.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

import core.config as config
from core.mcp import MCPRouteNormalizerASGI, session_router
from core.services.note_repository import get_repository
from app.middleware import configure_middleware
from app.routes.admin import router as admin_router
from app.routes.health import router as health_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config, warm the store, and host MCP sessions until shutdown."""
    config.validate_and_prepare_config()
    repository = get_repository()
    # First durable connection attempt happens at startup rather than on the first tool call
    backend = await asyncio.to_thread(repository.active_backend)
    config.logger.info("notes_backend_selected", extra={"backend": backend})
    try:
        async with session_router.run():
            yield
    finally:
        if repository.durable is not None:
            repository.durable.connection.dispose()


app = FastAPI(title="NoteGate", redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)

app.include_router(health_router)
app.include_router(root_router)
app.include_router(admin_router)

app.mount("/mcp", session_router)


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)
