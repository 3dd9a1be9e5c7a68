"""
Shared validation helpers for NoteGate services.
"""

from __future__ import annotations

from typing import Optional

from core.config import DEFAULT_NOTE_KEY, MAX_KEY_LENGTH, MAX_TEXT_LENGTH
from core.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_note_text(text: str) -> None:
    validate_required_text(text, "text", MAX_TEXT_LENGTH)


def normalize_note_key(key: Optional[str], field: str = "key") -> str:
    """Validate an optional logical key; blank or missing means the default key."""
    validate_optional_text(key, field, MAX_KEY_LENGTH)
    if key is None or not key.strip():
        return DEFAULT_NOTE_KEY
    return key.strip()


def validate_note_key(key: str, field: str = "key") -> str:
    validate_required_text(key, field, MAX_KEY_LENGTH)
    return key.strip()
