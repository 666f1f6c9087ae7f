"""
Thread-safe in-memory change store.

Each unit-of-work stages its changesets and records privately; commit
publishes them atomically under the store lock, rollback drops them. Ids come
from store-wide counters, so record ids strictly increase in capture order
within every changeset (ids consumed by a rolled-back unit-of-work are not
reused, like a database sequence).
"""

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from changeset_history.domain.models import (
    ChangeRecord,
    Changeset,
    ChangeType,
    HistoryEntry,
    Representation,
    Strategy,
)
from changeset_history.errors import InvalidChangesetReference
from changeset_history.store.base import ChangeStore, UnitOfWork, representation_matches
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryUnitOfWork(UnitOfWork):
    """UnitOfWork holding the writes staged by one transaction."""

    def __init__(self) -> None:
        super().__init__()
        self.staged_changesets: Dict[int, Changeset] = {}
        self.staged_records: List[ChangeRecord] = []


class InMemoryChangeStore(ChangeStore):
    """
    Change store kept in process memory.

    Parameters
    ----------
    clock : Callable[[], datetime], optional
        Source of changeset times. Defaults to the current UTC time.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._changesets: Dict[int, Changeset] = {}
        self._records: List[ChangeRecord] = []
        self._changeset_ids = itertools.count(1)
        self._record_ids = itertools.count(1)

    @contextmanager
    def _transaction(self) -> Iterator[MemoryUnitOfWork]:
        uow = MemoryUnitOfWork()
        try:
            yield uow
        except BaseException:
            log.debug(
                "Unit of work rolled back",
                extra={
                    "uow": uow.id,
                    "changesets": len(uow.staged_changesets),
                    "records": len(uow.staged_records),
                },
            )
            uow.staged_changesets.clear()
            uow.staged_records.clear()
            raise
        with self._lock:
            self._changesets.update(uow.staged_changesets)
            self._records.extend(uow.staged_records)

    def create_changeset(
        self, uow: MemoryUnitOfWork, operation: str, params: Any, user_id: str
    ) -> Changeset:
        uow.require_active()
        with self._lock:
            changeset_id = next(self._changeset_ids)
        changeset = Changeset(
            id=changeset_id,
            time=self._clock(),
            operation=operation,
            params=params,
            user_id=user_id,
        )
        uow.staged_changesets[changeset_id] = changeset
        return changeset

    def update_changeset(
        self, uow: MemoryUnitOfWork, changeset_id: int, operation: str, params: Any
    ) -> Changeset:
        uow.require_active()
        current = uow.staged_changesets.get(changeset_id)
        if current is None:
            # Committed changesets are immutable.
            raise InvalidChangesetReference(changeset_id)
        updated = current.model_copy(update={"operation": operation, "params": params})
        uow.staged_changesets[changeset_id] = updated
        return updated

    def get_changeset(self, changeset_id: int) -> Optional[Changeset]:
        with self._lock:
            return self._changesets.get(changeset_id)

    def append(
        self,
        uow: MemoryUnitOfWork,
        changeset_id: int,
        change_type: ChangeType,
        table_name: str,
        representation: Representation,
    ) -> ChangeRecord:
        uow.require_active()
        with self._lock:
            if changeset_id not in uow.staged_changesets and changeset_id not in self._changesets:
                raise InvalidChangesetReference(changeset_id)
            record_id = next(self._record_ids)
        record = ChangeRecord(
            id=record_id,
            changeset_id=changeset_id,
            change_type=change_type,
            table_name=table_name,
            representation=representation,
        )
        uow.staged_records.append(record)
        return record

    def query(
        self,
        table_name: str,
        strategy: Strategy,
        pkey: Optional[Mapping[str, Any]] = None,
        after: Optional[datetime] = None,
        until: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[HistoryEntry]:
        with self._lock:
            records = list(self._records)
            changesets = dict(self._changesets)

        entries: List[HistoryEntry] = []
        for record in records:
            if record.table_name != table_name:
                continue
            if not representation_matches(strategy, record.representation):
                continue
            if pkey is not None and not record.matches(pkey):
                continue
            changeset = changesets[record.changeset_id]
            if after is not None and changeset.time <= after:
                continue
            if until is not None and changeset.time > until:
                continue
            entries.append(HistoryEntry(changeset=changeset, record=record))

        entries.sort(key=lambda entry: entry.sort_key, reverse=descending)
        return entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["InMemoryChangeStore", "MemoryUnitOfWork"]
