"""
Note presentation: color labels, relative times, text blocks and the
pluggable image renderer.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

from core.models import NoteRecord, as_utc
from core.services.note_shared import logger


@dataclass(frozen=True)
class NoteColor:
    name: str
    background: str
    foreground: str
    emoji: str


DEFAULT_COLOR = NoteColor("default", "#F0F8FF", "#2F4F4F", "⚪")

# First matching rule wins
_COLOR_RULES: tuple[tuple[NoteColor, tuple[str, ...]], ...] = (
    (NoteColor("personal", "#FFE066", "#8B4513", "🟡"), ("personal", "private")),
    (NoteColor("work", "#90EE90", "#006400", "🟢"), ("work", "job", "office", "meeting", "project")),
    (NoteColor("ideas", "#87CEEB", "#191970", "🔵"), ("idea", "brainstorm", "creative", "thought")),
    (NoteColor("quotes", "#DDA0DD", "#4B0082", "🟣"), ("quote", "inspiration", "wisdom")),
    (NoteColor("reminders", "#FFA500", "#8B0000", "🟠"), ("remind", "todo", "task", "alert")),
)

COLOR_TIP = "🟡 personal  🟢 work  🔵 ideas  🟣 quotes  🟠 reminders  ⚪ default"


def note_color(key: str) -> NoteColor:
    lowered = key.lower()
    if lowered == "me":
        return _COLOR_RULES[0][0]
    for color, keywords in _COLOR_RULES:
        if any(keyword in lowered for keyword in keywords):
            return color
    return DEFAULT_COLOR


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count != 1 else ''} ago"


def format_time_ago(timestamp: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = (now - as_utc(timestamp)).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return _plural(minutes, "min")
    if hours < 24:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    if days < 30:
        return _plural(days // 7, "week")
    return as_utc(timestamp).strftime("%Y-%m-%d")


def format_note_block(record: NoteRecord, now: Optional[datetime] = None) -> str:
    color = note_color(record.logical_key)
    return (
        f'{color.emoji} "{record.logical_key}"\n'
        f'  "{record.text}"\n'
        f"  (created {format_time_ago(record.created_at, now)})"
    )


# =============================================================================
# Rendering collaborator
# =============================================================================

class NoteRenderer(Protocol):
    def render_note(self, key: str, text: str, created_at: datetime) -> Optional[bytes]:
        ...

    def render_board(self, notes: Sequence[NoteRecord]) -> Optional[bytes]:
        ...


class NullRenderer:
    """Renderer used when no image backend is installed: always text-only."""

    def render_note(self, key: str, text: str, created_at: datetime) -> Optional[bytes]:
        return None

    def render_board(self, notes: Sequence[NoteRecord]) -> Optional[bytes]:
        return None


def render_png_base64(renderer: NoteRenderer, records: Sequence[NoteRecord], board: bool = False) -> Optional[str]:
    """
    Run the renderer and return base64 PNG data, or None to fall back to text.

    Rendering never fails a request.
    """
    try:
        if board:
            png = renderer.render_board(records)
        else:
            record = records[0]
            png = renderer.render_note(record.logical_key, record.text, record.created_at)
    except Exception as exc:
        # RenderingFailure is the expected case; anything else is treated the same
        logger.warning(
            "note_render_failed",
            extra={"board": board, "error_type": type(exc).__name__, "error": str(exc)},
        )
        return None
    if not png:
        return None
    return base64.b64encode(png).decode("ascii")
