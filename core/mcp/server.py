"""
MCP server wiring and tool registration.

Each session gets its own FastMCP instance whose tools are bound to the
session's tenant.
"""

import asyncio
from datetime import datetime
from typing import Annotated, Any, Optional, Union

from fastmcp import FastMCP
from mcp.types import ImageContent, TextContent
from pydantic import Field

import core.config as config
from core.context import NoteSession
from core.models import NoteRecord
from core.services import note_service
from core.services.note_format import (
    COLOR_TIP,
    NoteRenderer,
    NullRenderer,
    format_note_block,
    note_color,
    render_png_base64,
)
from core.services.note_repository import NoteRepository

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
DESTRUCTIVE_TOOL_ANNOTATIONS = {"destructiveHint": True}

SERVER_NAME = "NoteGate"

Content = Union[TextContent, ImageContent]


def _text(value: str) -> TextContent:
    return TextContent(type="text", text=value)


def _image(data: str) -> ImageContent:
    return ImageContent(type="image", data=data, mime_type="image/png")


def _record_from_payload(payload: dict) -> NoteRecord:
    return NoteRecord(
        id=payload["id"],
        logical_key=payload["key"],
        text=payload["text"],
        created_at=datetime.fromisoformat(payload["created_at"]),
    )


def _tenant_line(tenant_id: str) -> str:
    return f"👤 {tenant_id}"


def _error_content(action: str, result: dict) -> list[Content]:
    return [_text(f"❌ Failed to {action}: {result.get('message', 'Unknown error')}")]


def added_content(result: dict, renderer: NoteRenderer) -> list[Content]:
    if result["status"] == "error":
        return _error_content("add note", result)
    record = _record_from_payload(result["note"])
    image = render_png_base64(renderer, [record])
    lines = [
        "📌 Note Added",
        "",
        format_note_block(record),
        "",
        "🖼️ Visual note image" if image else "⚠️ Image unavailable - showing text-only version",
        "",
        _tenant_line(result["tenant_id"]),
    ]
    content: list[Content] = [_text("\n".join(lines))]
    if image:
        content.append(_image(image))
    return content


def fetched_content(result: dict, renderer: NoteRenderer) -> list[Content]:
    if result["status"] == "error":
        return _error_content("get note", result)
    if result["status"] == "not_found":
        return [_text(f'📝 No sticky note found with name: "{result["key"]}"\n{_tenant_line(result["tenant_id"])}')]
    record = _record_from_payload(result["note"])
    image = render_png_base64(renderer, [record])
    lines = [
        "📌 Here is your sticky note:",
        "",
        format_note_block(record),
        "",
        _tenant_line(result["tenant_id"]),
    ]
    content: list[Content] = [_text("\n".join(lines))]
    if image:
        content.append(_image(image))
    return content


def board_content(result: dict, renderer: NoteRenderer) -> list[Content]:
    if result["status"] == "error":
        return _error_content("load notes board", result)
    header = f"🗂️ Your Sticky Notes Board • {_tenant_line(result['tenant_id'])}"
    if not result["groups"]:
        return [_text("\n".join([
            header,
            "",
            "📝 No sticky notes found. Create your first note to get started!",
            "",
            "💡 Tip: Use different note names to organize by color:",
            f"   {COLOR_TIP}",
        ]))]

    latest = [_record_from_payload(group["items"][0]) for group in result["groups"]]
    count = result["count"]
    lines = [header, "", f"You have {count} sticky note{'s' if count != 1 else ''}:", ""]
    for group, record in zip(result["groups"], latest):
        lines.append(format_note_block(record))
        earlier = group["count"] - 1
        if earlier > 0:
            lines.append(f"  (+{earlier} earlier note{'s' if earlier != 1 else ''})")
    image = render_png_base64(renderer, latest, board=True)
    if not image:
        lines.extend(["", "⚠️ Board image unavailable - showing text-only version"])
    content: list[Content] = [_text("\n".join(lines))]
    if image:
        content.append(_image(image))
    return content


def removed_content(result: dict) -> list[Content]:
    if result["status"] == "error":
        return _error_content("remove note", result)
    if result["status"] == "not_found":
        return [_text(f'📝 No sticky note found with name: "{result["key"]}"\n{_tenant_line(result["tenant_id"])}')]
    color = note_color(result["key"])
    return [_text(
        "🗑️ Note Removed!\n\n"
        f'{color.emoji} "{result["key"]}" has been peeled off your board\n'
        f"{_tenant_line(result['tenant_id'])}"
    )]


def cleared_content(result: dict) -> list[Content]:
    if result["status"] == "error":
        return _error_content("clear board", result)
    deleted = result["deleted_count"]
    return [_text(
        "🗂️ Board Cleared!\n\n"
        "🗑️ Successfully removed all sticky notes from your board\n"
        f"📊 Deleted {deleted} note{'s' if deleted != 1 else ''} total\n"
        f"{_tenant_line(result['tenant_id'])}\n\n"
        "✨ Fresh start! Ready for new notes."
    )]


def build_server(
    session: NoteSession,
    renderer: Optional[NoteRenderer] = None,
    repository: Optional[NoteRepository] = None,
) -> FastMCP:
    """Build the MCP server for one session; every tool acts on the session's tenant."""
    mcp = FastMCP(SERVER_NAME)
    renderer = renderer or NullRenderer()

    @mcp.tool(
        name="addNote",
        description=(
            "Add a new sticky note with optional color-coded naming. "
            "Returns formatted text and, when available, an image of the note."
        ),
    )
    async def add_note(
        text: Annotated[str, Field(description="The text content for your sticky note")],
        key: Annotated[
            Optional[str],
            Field(
                description=(
                    f'Optional name/key for the note (defaults to "{config.DEFAULT_NOTE_KEY}"). '
                    'Keywords like "work", "personal", "ideas", "quotes", "reminders" pick a color'
                )
            ),
        ] = None,
    ):
        result = await asyncio.to_thread(
            note_service.note_add, text, key, tenant_id=session.tenant_id, repository=repository
        )
        return added_content(result, renderer)

    @mcp.tool(
        name="getNote",
        description="Get and view the newest sticky note for a name/key.",
        annotations=READ_ONLY_TOOL_ANNOTATIONS,
    )
    async def get_note(
        key: Annotated[
            Optional[str],
            Field(description=f'Optional name/key for the note (defaults to "{config.DEFAULT_NOTE_KEY}")'),
        ] = None,
    ):
        result = await asyncio.to_thread(
            note_service.note_get, key, tenant_id=session.tenant_id, repository=repository
        )
        return fetched_content(result, renderer)

    @mcp.tool(
        name="listNotes",
        description="Display all your sticky notes as a board, grouped by name/key.",
        annotations=READ_ONLY_TOOL_ANNOTATIONS,
    )
    async def list_notes():
        result = await asyncio.to_thread(
            note_service.note_list, tenant_id=session.tenant_id, repository=repository
        )
        return board_content(result, renderer)

    @mcp.tool(
        name="removeNote",
        description="Remove every sticky note stored under a name/key.",
        annotations=DESTRUCTIVE_TOOL_ANNOTATIONS,
    )
    async def remove_note(
        key: Annotated[str, Field(description="The name/key of the sticky note to remove")],
    ):
        result = await asyncio.to_thread(
            note_service.note_remove, key, tenant_id=session.tenant_id, repository=repository
        )
        return removed_content(result)

    @mcp.tool(
        name="clearNotes",
        description="Remove all sticky notes from your board (use with caution).",
        annotations=DESTRUCTIVE_TOOL_ANNOTATIONS,
    )
    async def clear_notes():
        result = await asyncio.to_thread(
            note_service.note_clear, tenant_id=session.tenant_id, repository=repository
        )
        return cleared_content(result)

    return mcp


def protocol_server(server: FastMCP) -> Any:
    """Low-level MCP server behind a FastMCP instance (what transports connect to)."""
    return server._mcp_server


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
            scope["raw_path"] = b"/mcp/"
        await self.wrapped_app(scope, receive, send)
