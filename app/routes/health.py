"""
Health endpoint: storage backend and session status.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException

import core.config as config
from core.mcp import SessionRouter
from core.services.note_repository import NoteRepository
from app.deps import get_note_repository, get_session_router


router = APIRouter()


def _check_storage(repository: NoteRepository) -> dict:
    backend = repository.active_backend()
    if repository.durable is None:
        durable = {"configured": False, "ready": False, "strategy": None, "last_error": None}
    else:
        durable = repository.durable.connection.status()
    return {
        "backend": backend,
        "persistent": backend == "durable",
        "durable": durable,
    }


@router.get("/health")
async def health(
    repository: NoteRepository = Depends(get_note_repository),
    router_: SessionRouter = Depends(get_session_router),
):
    """Health check endpoint."""
    storage = await asyncio.to_thread(_check_storage, repository)
    sessions = {"running": router_.running, "active": router_.session_count()}
    if config.TRANSPORT_TYPE == "http" and not router_.running:
        raise HTTPException(
            status_code=503,
            detail={"storage": storage, "sessions": sessions},
        )

    return {
        # Transient storage still serves requests; it is reported, not failed
        "status": "healthy" if storage["persistent"] or not storage["durable"]["configured"] else "degraded",
        "service": "NoteGate",
        "version": "0.1.0",
        "instance_id": config.INSTANCE_ID,
        "storage": storage,
        "sessions": sessions,
    }
