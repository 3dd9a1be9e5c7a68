"""
Note store backends.

Both backends expose the same partition-scoped primitives:
- upsert a record
- query a logical group (or a legacy id match)
- query a whole partition
- delete one record by id
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Iterator

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from core.db import DurableConnection
from core.errors import BackendError, BackendUnavailable, RecordNotFound
from core.models import NoteRecord, NoteRow


class Store(ABC):
    backend_name = "store"

    @abstractmethod
    def upsert(self, tenant_id: str, record: NoteRecord) -> None:
        ...

    @abstractmethod
    def query_by_logical_key_or_id(self, tenant_id: str, key: str) -> Iterator[NoteRecord]:
        ...

    @abstractmethod
    def query_all(self, tenant_id: str) -> Iterator[NoteRecord]:
        ...

    @abstractmethod
    def delete(self, tenant_id: str, record_id: str) -> bool:
        ...

    def is_available(self) -> bool:
        return True


class DurableStore(Store):
    """SQLAlchemy-backed notes table, partitioned by tenant."""

    backend_name = "durable"

    def __init__(self, connection: DurableConnection):
        self.connection = connection

    def is_available(self) -> bool:
        return self.connection.ensure_ready() is not None

    def _session_factory(self):
        session_factory = self.connection.ensure_ready()
        if session_factory is None:
            raise BackendUnavailable("durable store unavailable")
        return session_factory

    def _stream(self, tenant_id: str, *criteria) -> Iterator[NoteRecord]:
        session_factory = self._session_factory()
        try:
            with session_factory() as db:
                query = (
                    db.query(NoteRow)
                    .filter(NoteRow.partition_key == tenant_id, *criteria)
                    .order_by(NoteRow.created_at.asc())
                )
                for row in query.yield_per(100):
                    yield row.to_record()
        except SQLAlchemyError as exc:
            raise BackendError(f"durable query failed: {type(exc).__name__}") from exc

    def upsert(self, tenant_id: str, record: NoteRecord) -> None:
        session_factory = self._session_factory()
        try:
            with session_factory() as db:
                db.merge(NoteRow.from_record(tenant_id, record))
                db.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"durable upsert failed: {type(exc).__name__}") from exc

    def query_by_logical_key_or_id(self, tenant_id: str, key: str) -> Iterator[NoteRecord]:
        # Matching on id keeps lookups by record id working for legacy callers
        return self._stream(tenant_id, or_(NoteRow.logical_key == key, NoteRow.id == key))

    def query_all(self, tenant_id: str) -> Iterator[NoteRecord]:
        return self._stream(tenant_id)

    def delete(self, tenant_id: str, record_id: str) -> bool:
        session_factory = self._session_factory()
        try:
            with session_factory() as db:
                deleted = (
                    db.query(NoteRow)
                    .filter(NoteRow.partition_key == tenant_id, NoteRow.id == record_id)
                    .delete(synchronize_session=False)
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise BackendError(f"durable delete failed: {type(exc).__name__}") from exc
        if not deleted:
            raise RecordNotFound(f"note {record_id} not found")
        return True


class TransientStore(Store):
    """In-process tenant -> logical key -> records map. Lives as long as the process."""

    backend_name = "transient"

    def __init__(self):
        self._lock = threading.RLock()
        self._partitions: dict[str, dict[str, list[NoteRecord]]] = {}

    def upsert(self, tenant_id: str, record: NoteRecord) -> None:
        with self._lock:
            groups = self._partitions.setdefault(tenant_id, {})
            for items in groups.values():
                for index, existing in enumerate(items):
                    if existing.id == record.id:
                        del items[index]
                        break
            groups.setdefault(record.logical_key, []).append(record)

    def query_by_logical_key_or_id(self, tenant_id: str, key: str) -> Iterator[NoteRecord]:
        with self._lock:
            groups = self._partitions.get(tenant_id, {})
            matches = list(groups.get(key, ()))
            for group_key, items in groups.items():
                if group_key != key:
                    matches.extend(item for item in items if item.id == key)
        return iter(matches)

    def query_all(self, tenant_id: str) -> Iterator[NoteRecord]:
        with self._lock:
            groups = self._partitions.get(tenant_id, {})
            snapshot = [item for items in groups.values() for item in items]
        return iter(snapshot)

    def delete(self, tenant_id: str, record_id: str) -> bool:
        with self._lock:
            groups = self._partitions.get(tenant_id)
            if not groups:
                return False
            for group_key, items in list(groups.items()):
                for index, existing in enumerate(items):
                    if existing.id == record_id:
                        del items[index]
                        if not items:
                            del groups[group_key]
                        return True
        return False

    def clear(self, tenant_id: str) -> int:
        """Drop every record in one partition; returns how many were held."""
        with self._lock:
            groups = self._partitions.pop(tenant_id, {})
        return sum(len(items) for items in groups.values())
