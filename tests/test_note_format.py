from datetime import datetime, timedelta, timezone

from core.errors import RenderingFailure
from core.models import NoteRecord
from core.services.note_format import (
    DEFAULT_COLOR,
    NullRenderer,
    format_note_block,
    format_time_ago,
    note_color,
    render_png_base64,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(key="work", text="standup", age=timedelta(0)):
    return NoteRecord(id="abc", logical_key=key, text=text, created_at=NOW - age)


def test_note_color_keywords():
    assert note_color("Work stuff").name == "work"
    assert note_color("me").name == "personal"
    assert note_color("brainstorm").name == "ideas"
    assert note_color("daily-quote").name == "quotes"
    assert note_color("todo").name == "reminders"
    assert note_color("groceries") == DEFAULT_COLOR


def test_format_time_ago_buckets():
    assert format_time_ago(NOW - timedelta(seconds=30), NOW) == "Just now"
    assert format_time_ago(NOW - timedelta(minutes=1), NOW) == "1 min ago"
    assert format_time_ago(NOW - timedelta(minutes=5), NOW) == "5 mins ago"
    assert format_time_ago(NOW - timedelta(hours=2), NOW) == "2 hours ago"
    assert format_time_ago(NOW - timedelta(days=1), NOW) == "1 day ago"
    assert format_time_ago(NOW - timedelta(days=14), NOW) == "2 weeks ago"
    assert format_time_ago(datetime(2025, 1, 2, tzinfo=timezone.utc), NOW) == "2025-01-02"


def test_format_time_ago_accepts_naive_utc():
    assert format_time_ago(datetime(2025, 6, 1, 11, 0), NOW) == "1 hour ago"


def test_format_note_block():
    block = format_note_block(_record(age=timedelta(minutes=3)), NOW)

    assert block == '🟢 "work"\n  "standup"\n  (created 3 mins ago)'


class _PngRenderer:
    def render_note(self, key, text, created_at):
        return b"\x89PNG note"

    def render_board(self, notes):
        return b"\x89PNG board"


class _BrokenRenderer:
    def render_note(self, key, text, created_at):
        raise RenderingFailure("font missing")

    def render_board(self, notes):
        raise OSError("canvas unavailable")


def test_render_png_base64():
    assert render_png_base64(_PngRenderer(), [_record()]) == "iVBORyBub3Rl"
    assert render_png_base64(NullRenderer(), [_record()]) is None


def test_render_failures_fall_back_to_text():
    assert render_png_base64(_BrokenRenderer(), [_record()]) is None
    assert render_png_base64(_BrokenRenderer(), [_record()], board=True) is None
