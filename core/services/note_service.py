"""
Note services: add, get, list, remove and clear notes for one tenant.

Callers only ever see note outcomes. Which backend served a call is logged,
never returned.
"""

from __future__ import annotations

from typing import Optional

from core.errors import ValidationIssue
from core.services.note_repository import NoteRepository, get_repository
from core.services.note_shared import logger, service_tool
from core.validators import normalize_note_key, validate_note_key, validate_note_text


def _require_tenant(tenant_id: Optional[str]) -> str:
    if not tenant_id:
        raise ValidationIssue(
            "tenant_id is required for this operation",
            field="tenant_id",
            error_type="required",
        )
    return tenant_id


@service_tool
def note_add(
    text: str,
    key: Optional[str] = None,
    *,
    tenant_id: str,
    repository: Optional[NoteRepository] = None,
) -> dict:
    """Store a note under a logical key (``default`` when omitted)."""
    tenant_id = _require_tenant(tenant_id)
    validate_note_text(text)
    note_key = normalize_note_key(key)

    repo = repository or get_repository()
    record = repo.add_note(tenant_id, note_key, text)
    logger.info("note_added", extra={"tenant_id": tenant_id, "key": note_key})
    return {
        "status": "stored",
        "tenant_id": tenant_id,
        "note": record.to_dict(),
    }


@service_tool
def note_get(
    key: Optional[str] = None,
    *,
    tenant_id: str,
    repository: Optional[NoteRepository] = None,
) -> dict:
    """Fetch the newest note for a logical key."""
    tenant_id = _require_tenant(tenant_id)
    note_key = normalize_note_key(key)

    repo = repository or get_repository()
    record = repo.get_latest(tenant_id, note_key)
    if record is None:
        return {"status": "not_found", "tenant_id": tenant_id, "key": note_key}
    return {
        "status": "found",
        "tenant_id": tenant_id,
        "key": note_key,
        "note": record.to_dict(),
    }


@service_tool
def note_list(
    *,
    tenant_id: str,
    repository: Optional[NoteRepository] = None,
) -> dict:
    """List every logical group, keys in order, notes newest first."""
    tenant_id = _require_tenant(tenant_id)
    repo = repository or get_repository()
    groups = repo.list_grouped(tenant_id)
    return {
        "status": "ok",
        "tenant_id": tenant_id,
        "count": len(groups),
        "note_count": sum(len(group.items) for group in groups),
        "groups": [group.to_dict() for group in groups],
    }


@service_tool
def note_remove(
    key: str,
    *,
    tenant_id: str,
    repository: Optional[NoteRepository] = None,
) -> dict:
    """Remove a whole logical group."""
    tenant_id = _require_tenant(tenant_id)
    note_key = validate_note_key(key)

    repo = repository or get_repository()
    removed = repo.remove_by_key(tenant_id, note_key)
    if removed:
        logger.info("note_removed", extra={"tenant_id": tenant_id, "key": note_key})
    return {
        "status": "removed" if removed else "not_found",
        "tenant_id": tenant_id,
        "key": note_key,
    }


@service_tool
def note_clear(
    *,
    tenant_id: str,
    repository: Optional[NoteRepository] = None,
) -> dict:
    """Remove every logical group for the tenant."""
    tenant_id = _require_tenant(tenant_id)
    repo = repository or get_repository()
    deleted_count = repo.remove_all(tenant_id)
    logger.info("notes_cleared", extra={"tenant_id": tenant_id, "deleted_count": deleted_count})
    return {
        "status": "cleared",
        "tenant_id": tenant_id,
        "deleted_count": deleted_count,
    }
