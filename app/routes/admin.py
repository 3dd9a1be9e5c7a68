"""
Log verbosity admin endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from core import log_control
from core.errors import ValidationIssue


router = APIRouter(prefix="/admin")


class LogLevelUpdate(BaseModel):
    level: str


@router.get("/log-level")
async def get_log_level():
    return {"level": log_control.get_level(), "levels": list(log_control.LOG_LEVELS)}


@router.put("/log-level")
async def put_log_level(update: LogLevelUpdate):
    try:
        level = log_control.set_level(update.level)
    except ValidationIssue as exc:
        raise HTTPException(status_code=400, detail={"field": exc.field, "message": str(exc)})
    return {"level": level}
