"""
Delta strategy: store only the columns an update changed, plus the primary key.

Inserts, deletes and bulk clears still record the full image, which is what
makes backward replay able to bring a removed row back.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from changeset_history.domain.models import (
    ChangeRecord,
    ChangeType,
    DeltaImage,
    DeltaUpdate,
    FieldChange,
    MutationEvent,
    Representation,
    TableConfig,
)
from changeset_history.domain.values import RowImage, strip_columns, to_structured, values_equal
from changeset_history.strategies.abstract import AbstractCaptureStrategy
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


class DeltaStrategy(AbstractCaptureStrategy):
    """
    Field-level diff capture keyed by the table's primary key columns.
    """

    name: str = "delta"
    description: str = "Changed fields (old/new) plus primary key per update."

    def _encode(self, event: MutationEvent, config: TableConfig) -> List[Representation]:
        if event.change_type is ChangeType.INSERT:
            return [DeltaImage(full_image=strip_columns(event.new, config.ignore_always))]

        if event.change_type.removes_row:
            return [DeltaImage(full_image=strip_columns(event.old, config.ignore_always))]

        old_row = strip_columns(event.old, config.update_exclusions)
        changed: Dict[str, FieldChange] = {}
        # Diff over the old image's columns only.
        for column, old_value in old_row.items():
            new_value = to_structured(column, event.new.get(column))
            if not values_equal(old_value, new_value):
                changed[column] = FieldChange(old=old_value, new=new_value)

        if not changed:
            return []

        pkey_fields = {
            column: to_structured(column, event.new.get(column)) for column in config.pkey_columns
        }
        return [DeltaUpdate(pkey_fields=pkey_fields, changed_fields=changed)]

    def apply(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        rep = record.representation
        if record.change_type is ChangeType.INSERT:
            return dict(rep.full_image)
        if record.change_type.removes_row:
            return None
        row = self._base_for_update(state, record)
        for column, change in rep.changed_fields.items():
            row[column] = change.new
        return row

    def revert(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        rep = record.representation
        if record.change_type is ChangeType.INSERT:
            return None
        if record.change_type.removes_row:
            return dict(rep.full_image)
        row = self._base_for_update(state, record)
        for column, change in rep.changed_fields.items():
            row[column] = change.old
        return row

    def _base_for_update(self, state: Optional[RowImage], record: ChangeRecord) -> RowImage:
        if state is not None:
            return dict(state)
        log.warning(
            "Replaying an update onto an absent row; history may be incomplete",
            extra={"table": record.table_name, "record_id": record.id},
        )
        return dict(record.representation.pkey_fields)


__all__ = ["DeltaStrategy"]
