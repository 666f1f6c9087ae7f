"""
Capture hook invoked by the host for every mutation of a table.

The hook encodes the mutation under the table's strategy and appends the
result to the changeset bound to the unit-of-work. Mutations of untracked
tables are ignored.

Delta tables require a bound changeset for every mutation. Snapshot tables
require one only when there is something to write, so an update touching
nothing but ignored columns passes without one. A bulk clear of a tracked
table always requires one, even when the table is empty.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Union

from changeset_history.domain.models import ChangeRecord, ChangeType, MutationEvent, Strategy
from changeset_history.encoder import encode
from changeset_history.store.base import ChangeStore, UnitOfWork
from changeset_history.tables import TableRegistry
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


class ChangeCapture:
    """
    Host-facing capture hook.

    Parameters
    ----------
    store : ChangeStore
        Where records are appended.
    tables : TableRegistry
        Registrations of the tracked tables.
    """

    def __init__(self, store: ChangeStore, tables: TableRegistry) -> None:
        self.store = store
        self.tables = tables

    def capture(
        self,
        uow: UnitOfWork,
        table_name: str,
        change_type: Union[ChangeType, str],
        old: Optional[Mapping[str, Any]] = None,
        new: Optional[Mapping[str, Any]] = None,
    ) -> List[ChangeRecord]:
        """
        Record one mutation.

        Returns
        -------
        List[ChangeRecord]
            The appended records; empty for untracked tables and no-op updates.

        Raises
        ------
        NoActiveChangeset
            If no changeset is bound and the table is delta-tracked or
            something must be written.
        UnrepresentableValue
            If a logged column cannot be encoded.
        """
        uow.require_active()
        config = self.tables.get(table_name)
        if config is None:
            log.debug("Mutation of untracked table ignored", extra={"table": table_name})
            return []

        event = MutationEvent(
            table_name=table_name,
            change_type=ChangeType(change_type),
            old=dict(old) if old is not None else None,
            new=dict(new) if new is not None else None,
        )
        if config.strategy is Strategy.DELTA:
            uow.require_changeset()
        representations = encode(event, config)
        if not representations:
            log.debug(
                "No logged column changed; nothing recorded",
                extra={"table": table_name, "change_type": event.change_type.value},
            )
            return []

        changeset_id = uow.require_changeset()
        records = []
        for representation in representations:
            record = self.store.append(
                uow, changeset_id, event.change_type, table_name, representation
            )
            log.debug(
                "Change recorded",
                extra={
                    "table": table_name,
                    "change_type": event.change_type.value,
                    "changeset_id": changeset_id,
                    "record_id": record.id,
                },
            )
            records.append(record)
        return records

    def on_insert(
        self, uow: UnitOfWork, table_name: str, new: Mapping[str, Any]
    ) -> List[ChangeRecord]:
        return self.capture(uow, table_name, ChangeType.INSERT, new=new)

    def on_update(
        self,
        uow: UnitOfWork,
        table_name: str,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
    ) -> List[ChangeRecord]:
        return self.capture(uow, table_name, ChangeType.UPDATE, old=old, new=new)

    def on_delete(
        self, uow: UnitOfWork, table_name: str, old: Mapping[str, Any]
    ) -> List[ChangeRecord]:
        return self.capture(uow, table_name, ChangeType.DELETE, old=old)

    def on_bulk_clear(
        self, uow: UnitOfWork, table_name: str, rows: Iterable[Mapping[str, Any]]
    ) -> List[ChangeRecord]:
        """
        Record a bulk clear: one record per row surviving at clear time.

        The caller must keep other writers off the table until the clear
        itself is done.
        """
        uow.require_active()
        if self.tables.is_tracked(table_name):
            uow.require_changeset()
        records: List[ChangeRecord] = []
        for row in rows:
            records.extend(self.capture(uow, table_name, ChangeType.BULK_CLEAR, old=row))
        return records


__all__ = ["ChangeCapture"]
