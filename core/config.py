"""
Shared configuration for NoteGate core.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("notegate")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_str(env_name: str) -> str | None:
    value = os.environ.get(env_name, "").strip()
    return value or None


# Transport settings
TRANSPORT_TYPE = os.environ.get("TRANSPORT_TYPE", "http").strip().lower()
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = _get_int("PORT", 3000)
JSON_RESPONSE = _get_bool("NOTEGATE_JSON_RESPONSE", True)
INSTANCE_ID = os.environ.get("NOTEGATE_INSTANCE_ID", "notegate-1")

# Durable store settings
DATABASE_URL = _get_str("DATABASE_URL")
NOTES_DB_USER = _get_str("NOTES_DB_USER")
NOTES_DB_PASSWORD = _get_str("NOTES_DB_PASSWORD")
NOTES_TABLE_NAME = os.environ.get("NOTES_TABLE_NAME", "sticky_notes").strip() or "sticky_notes"
DB_CONNECT_TIMEOUT_SECONDS = _get_float("DB_CONNECT_TIMEOUT_SECONDS", 5.0)

# Tenancy: pinned identifier survives restarts; unset means a random id per process/session
PINNED_TENANT_ID = _get_str("MCP_USER_ID")
TENANT_QUERY_PARAM = "userId"
TENANT_HEADER = "x-mcp-user-id"

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").strip().lower()

# Note/input limits
DEFAULT_NOTE_KEY = "default"
MAX_TEXT_LENGTH = _get_int("NOTEGATE_MAX_TEXT_LENGTH", 8000)
MAX_KEY_LENGTH = _get_int("NOTEGATE_MAX_KEY_LENGTH", 255)


def validate_and_prepare_config() -> None:
    """Validate configuration and report the storage mode at startup."""
    errors = []
    if TRANSPORT_TYPE not in {"http", "stdio"}:
        errors.append("TRANSPORT_TYPE must be 'http' or 'stdio'")

    if PORT <= 0 or PORT > 65535:
        errors.append("PORT must be between 1 and 65535")

    if DATABASE_URL:
        try:
            make_url(DATABASE_URL)
        except ArgumentError:
            errors.append("DATABASE_URL is not a valid database URL")

    if bool(NOTES_DB_USER) != bool(NOTES_DB_PASSWORD):
        errors.append("NOTES_DB_USER and NOTES_DB_PASSWORD must be set together")

    if MAX_TEXT_LENGTH <= 0 or MAX_KEY_LENGTH <= 0:
        errors.append("NOTEGATE_MAX_TEXT_LENGTH and NOTEGATE_MAX_KEY_LENGTH must be positive")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))

    if DATABASE_URL:
        logger.info(
            "durable_store_configured",
            extra={"secondary_credentials": bool(NOTES_DB_USER)},
        )
    else:
        logger.warning(
            "No durable store configured - notes are kept in memory and lost on restart. "
            "Set DATABASE_URL to persist them."
        )
