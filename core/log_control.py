"""
Log verbosity control shared by the JSON-RPC admin methods and the HTTP admin route.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

import core.config as config
from core.errors import ValidationIssue

# MCP logging levels (RFC 5424 names) mapped onto stdlib levels
LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": logging.CRITICAL,
    "emergency": logging.CRITICAL,
}

GET_LEVEL_METHOD = "logging/getLevel"
SET_LEVEL_METHOD = "logging/setLevel"
ADMIN_METHODS = frozenset({GET_LEVEL_METHOD, SET_LEVEL_METHOD})

_lock = threading.Lock()
_current_level = config.LOG_LEVEL if config.LOG_LEVEL in LOG_LEVELS else "info"
config.logger.setLevel(LOG_LEVELS[_current_level])


def get_level() -> str:
    return _current_level


def set_level(level: str) -> str:
    global _current_level
    normalized = level.strip().lower() if isinstance(level, str) else ""
    if normalized not in LOG_LEVELS:
        raise ValidationIssue(
            f"level must be one of: {', '.join(LOG_LEVELS)}",
            field="level",
            error_type="invalid_choice",
        )
    with _lock:
        _current_level = normalized
        config.logger.setLevel(LOG_LEVELS[normalized])
    config.logger.info("log_level_changed", extra={"level": normalized})
    return normalized


def _rpc_result(request_id: Any, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def is_admin_request(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("method") in ADMIN_METHODS


def handle_admin_request(payload: Any) -> Optional[dict]:
    """Answer a logging admin JSON-RPC request; None when the payload is not one."""
    if not is_admin_request(payload):
        return None
    request_id = payload.get("id")
    if payload["method"] == GET_LEVEL_METHOD:
        return _rpc_result(request_id, {"level": get_level()})

    params = payload.get("params") or {}
    try:
        level = set_level(params.get("level") if isinstance(params, dict) else None)
    except ValidationIssue as exc:
        return _rpc_error(request_id, -32602, str(exc))
    return _rpc_result(request_id, {"level": level})
