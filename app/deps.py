"""
Dependency helpers for the standalone FastAPI app.
"""

from __future__ import annotations

from core.mcp import SessionRouter, session_router
from core.services.note_repository import NoteRepository, get_repository


def get_note_repository() -> NoteRepository:
    return get_repository()


def get_session_router() -> SessionRouter:
    return session_router
