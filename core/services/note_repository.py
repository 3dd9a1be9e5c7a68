"""
Note repository: one contract over the durable and transient stores.

Every store-touching operation runs against exactly one backend. The durable
store is preferred whenever it is reachable; a durable failure re-runs the
whole operation once against the transient store. There is no sticky degraded
mode: the next call tries the durable store again. The two stores are never
reconciled, so notes written during a durable outage stay in process memory.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Callable, Optional

import core.config as config
from core.db import DurableConnection
from core.errors import BackendError, RecordNotFound
from core.models import NoteGroup, NoteRecord, new_note_id
from core.services.note_stores import DurableStore, Store, TransientStore

logger = config.logger


class CreationClock:
    """UTC clock that never returns the same instant twice within a process."""

    def __init__(self, source: Callable[[], datetime] | None = None):
        self._source = source or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def __call__(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


def _with_failover(operation: Callable) -> Callable:
    @wraps(operation)
    def wrapper(self: "NoteRepository", tenant_id: str, *args, **kwargs):
        store = self._select_store()
        if store is self.transient:
            return operation(self, store, tenant_id, *args, **kwargs)
        try:
            return operation(self, store, tenant_id, *args, **kwargs)
        except BackendError as exc:
            logger.warning(
                "note_store_failover",
                extra={
                    "operation": operation.__name__.lstrip("_"),
                    "tenant_id": tenant_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return operation(self, self.transient, tenant_id, *args, **kwargs)
    return wrapper


def _newest_first(items: list[NoteRecord]) -> tuple[NoteRecord, ...]:
    # Reversing first keeps equal timestamps in latest-inserted-first order
    return tuple(sorted(reversed(items), key=lambda record: record.created_at, reverse=True))


class NoteRepository:
    def __init__(
        self,
        durable: Optional[DurableStore] = None,
        transient: Optional[TransientStore] = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.durable = durable
        self.transient = transient if transient is not None else TransientStore()
        self._clock = clock or CreationClock()

    def _select_store(self) -> Store:
        if self.durable is not None and self.durable.is_available():
            return self.durable
        return self.transient

    def active_backend(self) -> str:
        return self._select_store().backend_name

    # -------------------------------------------------------------------------
    # Store-touching operations (one backend per call)
    # -------------------------------------------------------------------------

    @_with_failover
    def _store_record(self, store: Store, tenant_id: str, record: NoteRecord) -> str:
        store.upsert(tenant_id, record)
        logger.debug(
            "note_stored",
            extra={"backend": store.backend_name, "tenant_id": tenant_id, "key": record.logical_key},
        )
        return store.backend_name

    @_with_failover
    def _get_latest(self, store: Store, tenant_id: str, key: str) -> Optional[NoteRecord]:
        latest: Optional[NoteRecord] = None
        for record in store.query_by_logical_key_or_id(tenant_id, key):
            # ">=" lets the last record seen win a tie
            if latest is None or record.created_at >= latest.created_at:
                latest = record
        return latest

    @_with_failover
    def _list_grouped(self, store: Store, tenant_id: str) -> list[NoteGroup]:
        groups: dict[str, list[NoteRecord]] = {}
        for record in store.query_all(tenant_id):
            groups.setdefault(record.logical_key, []).append(record)
        return [NoteGroup(key=key, items=_newest_first(items)) for key, items in sorted(groups.items())]

    @_with_failover
    def _remove_by_key(self, store: Store, tenant_id: str, key: str) -> bool:
        targets = [
            record.id
            for record in store.query_by_logical_key_or_id(tenant_id, key)
            if record.logical_key == key
        ]
        removed = False
        for record_id in targets:
            try:
                removed = store.delete(tenant_id, record_id) or removed
            except RecordNotFound:
                logger.info(
                    "note_already_removed",
                    extra={"backend": store.backend_name, "tenant_id": tenant_id, "key": key},
                )
        return removed

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    def add_note(self, tenant_id: str, key: Optional[str], text: str) -> NoteRecord:
        record = NoteRecord(
            id=new_note_id(),
            logical_key=key or config.DEFAULT_NOTE_KEY,
            text=text,
            created_at=self._clock(),
        )
        self._store_record(tenant_id, record)
        return record

    def get_latest(self, tenant_id: str, key: Optional[str]) -> Optional[NoteRecord]:
        """
        Newest record whose logical key (or, for legacy callers, id) equals key.

        Ties on created_at go to the record scanned last; the durable scan order
        is decided by the database, so a durable tie is not deterministic.
        """
        return self._get_latest(tenant_id, key or config.DEFAULT_NOTE_KEY)

    def list_grouped(self, tenant_id: str) -> list[NoteGroup]:
        return self._list_grouped(tenant_id)

    def remove_by_key(self, tenant_id: str, key: str) -> bool:
        return self._remove_by_key(tenant_id, key)

    def remove_all(self, tenant_id: str) -> int:
        """
        Remove every group in the partition, one key at a time.

        Not atomic: a crash part way through leaves the remaining groups in place.
        Returns the number of groups removed.
        """
        removed = 0
        for group in self.list_grouped(tenant_id):
            if self.remove_by_key(tenant_id, group.key):
                removed += 1
        return removed


_REPOSITORY: Optional[NoteRepository] = None
_REPOSITORY_LOCK = threading.Lock()


def build_repository(connection: Optional[DurableConnection] = None) -> NoteRepository:
    connection = connection if connection is not None else DurableConnection()
    durable = DurableStore(connection) if connection.configured else None
    return NoteRepository(durable=durable)


def get_repository() -> NoteRepository:
    """Process-wide repository, built from configuration on first use."""
    global _REPOSITORY
    if _REPOSITORY is None:
        with _REPOSITORY_LOCK:
            if _REPOSITORY is None:
                _REPOSITORY = build_repository()
    return _REPOSITORY


def set_repository(repository: Optional[NoteRepository]) -> None:
    global _REPOSITORY
    with _REPOSITORY_LOCK:
        _REPOSITORY = repository
