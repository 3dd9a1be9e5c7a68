"""
NoteGate data models
Note records, logical groups and the durable notes table
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.orm import declarative_base

import core.config as config

Base = declarative_base()


def new_note_id() -> str:
    return uuid.uuid4().hex


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class NoteRecord:
    id: str
    logical_key: str
    text: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.logical_key,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class NoteGroup:
    """All records of one partition sharing a logical key, newest first."""

    key: str
    items: tuple[NoteRecord, ...] = field(default_factory=tuple)

    @property
    def latest(self) -> NoteRecord | None:
        return self.items[0] if self.items else None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "count": len(self.items),
            "items": [item.to_dict() for item in self.items],
        }


# =============================================================================
# Durable table
# =============================================================================

class NoteRow(Base):
    __tablename__ = config.NOTES_TABLE_NAME

    partition_key = Column(String(200), primary_key=True)  # tenant
    id = Column(String(64), primary_key=True)
    logical_key = Column(String(255), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(f"ix_{config.NOTES_TABLE_NAME}_partition_logical_key", "partition_key", "logical_key"),
    )

    @classmethod
    def from_record(cls, tenant_id: str, record: NoteRecord) -> "NoteRow":
        return cls(
            partition_key=tenant_id,
            id=record.id,
            logical_key=record.logical_key,
            text=record.text,
            created_at=record.created_at,
        )

    def to_record(self) -> NoteRecord:
        return NoteRecord(
            id=self.id,
            logical_key=self.logical_key,
            text=self.text,
            created_at=as_utc(self.created_at),
        )
