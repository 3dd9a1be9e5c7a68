"""
Session and tenant context objects for core services.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping, Optional

import core.config as config
from core.errors import InvalidSession


@dataclass(frozen=True)
class ResolvedTenant:
    tenant_id: str
    source: str  # fixed | hint | pinned | generated

    @property
    def generated(self) -> bool:
        return self.source == "generated"


class TenantResolver:
    """
    Fixes a tenant identifier once and then keeps returning it.

    Precedence for the first resolution: explicit hint, then the pinned
    identifier from configuration, then a freshly generated one. Later hints
    never replace a fixed tenant.
    """

    def __init__(self, pinned_tenant_id: Optional[str] = None):
        self._pinned = pinned_tenant_id
        self._tenant_id: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def tenant_id(self) -> Optional[str]:
        return self._tenant_id

    def resolve(self, hint: Optional[str] = None) -> ResolvedTenant:
        with self._lock:
            if self._tenant_id is not None:
                if hint and hint != self._tenant_id:
                    config.logger.warning(
                        "tenant_hint_ignored",
                        extra={"tenant_id": self._tenant_id, "hint": hint},
                    )
                return ResolvedTenant(self._tenant_id, "fixed")

            if hint:
                self._tenant_id = hint
                return ResolvedTenant(hint, "hint")

            if self._pinned:
                self._tenant_id = self._pinned
                return ResolvedTenant(self._pinned, "pinned")

            self._tenant_id = f"user-{uuid.uuid4().hex[:8]}"
            config.logger.warning(
                f"Generated tenant id {self._tenant_id}; notes will not survive a restart. "
                f"Set MCP_USER_ID or pass ?{config.TENANT_QUERY_PARAM}= to pin it."
            )
            return ResolvedTenant(self._tenant_id, "generated")


def _clean_hint(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def tenant_hint_from_request(
    headers: Mapping[str, str],
    query_params: Mapping[str, str],
) -> Optional[str]:
    """Tenant hint from the ``userId`` query parameter, else the ``x-mcp-user-id`` header."""
    return _clean_hint(query_params.get(config.TENANT_QUERY_PARAM)) or _clean_hint(
        headers.get(config.TENANT_HEADER)
    )


class SessionState(str, Enum):
    uninitialized = "uninitialized"
    active = "active"
    closed = "closed"


@dataclass
class NoteSession:
    session_id: str
    tenant_id: str
    tenant_source: str = "fixed"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: SessionState = SessionState.uninitialized

    @property
    def tenant_generated(self) -> bool:
        return self.tenant_source == "generated"

    def activate(self) -> None:
        if self.state is SessionState.closed:
            raise InvalidSession(self.session_id, "Session already closed")
        self.state = SessionState.active

    def close(self) -> bool:
        """Mark closed; returns False when it already was."""
        if self.state is SessionState.closed:
            return False
        self.state = SessionState.closed
        return True

    @classmethod
    def open(
        cls,
        session_id: str,
        resolver: TenantResolver,
        hint: Optional[str] = None,
    ) -> "NoteSession":
        resolved = resolver.resolve(hint)
        return cls(
            session_id=session_id,
            tenant_id=resolved.tenant_id,
            tenant_source=resolved.source,
        )


__all__ = [
    "ResolvedTenant",
    "TenantResolver",
    "tenant_hint_from_request",
    "SessionState",
    "NoteSession",
]
