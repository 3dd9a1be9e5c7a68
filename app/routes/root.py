"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import core.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "NoteGate",
        "version": "0.1.0",
        "description": "Multi-tenant sticky notes over MCP",
        "transport": config.TRANSPORT_TYPE,
        "tools": ["addNote", "getNote", "listNotes", "removeNote", "clearNotes"],
        "endpoints": {
            "health": "/health",
            "mcp": "/mcp",
            "log_level": "/admin/log-level",
        },
        "tenant": {
            "pinned": bool(config.PINNED_TENANT_ID),
            "query_param": config.TENANT_QUERY_PARAM,
            "header": config.TENANT_HEADER,
        },
    }
