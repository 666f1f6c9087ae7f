"""
Wire format of the persisted history tables.

Snapshot records occupy two jsonb columns (``record``, ``old_record``). Delta
records occupy one jsonb ``change`` column: the full image for INSERT, DELETE
and TRUNCATE, and for UPDATE a flat object mixing primary key values with
``{"o": old, "n": new}`` pairs for each changed column.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from changeset_history.domain.models import (
    ChangeType,
    DeltaImage,
    DeltaUpdate,
    FieldChange,
    SnapshotChange,
)

OLD_KEY = "o"
NEW_KEY = "n"


def _is_field_change(value: Any) -> bool:
    return isinstance(value, dict) and set(value) == {OLD_KEY, NEW_KEY}


def snapshot_to_wire(rep: SnapshotChange) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Return the ``(record, old_record)`` column values."""
    return rep.new_image, rep.old_image


def snapshot_from_wire(
    record: Optional[Dict[str, Any]], old_record: Optional[Dict[str, Any]]
) -> SnapshotChange:
    return SnapshotChange(new_image=record, old_image=old_record)


def delta_to_wire(rep: DeltaUpdate | DeltaImage) -> Dict[str, Any]:
    """Return the ``change`` column value for a delta representation."""
    if isinstance(rep, DeltaImage):
        return dict(rep.full_image)
    change: Dict[str, Any] = {
        column: {OLD_KEY: field.old, NEW_KEY: field.new}
        for column, field in rep.changed_fields.items()
    }
    change.update(rep.pkey_fields)
    return change


def delta_from_wire(change_type: ChangeType, change: Dict[str, Any]) -> DeltaUpdate | DeltaImage:
    """
    Rebuild a delta representation from a stored ``change`` object.

    For UPDATE records, entries shaped ``{"o": ..., "n": ...}`` are changed
    columns and every other entry is a primary key value.
    """
    if change_type is not ChangeType.UPDATE:
        return DeltaImage(full_image=change)
    pkey_fields: Dict[str, Any] = {}
    changed_fields: Dict[str, FieldChange] = {}
    for column, value in change.items():
        if _is_field_change(value):
            changed_fields[column] = FieldChange(old=value[OLD_KEY], new=value[NEW_KEY])
        else:
            pkey_fields[column] = value
    return DeltaUpdate(pkey_fields=pkey_fields, changed_fields=changed_fields)


__all__ = [
    "snapshot_to_wire",
    "snapshot_from_wire",
    "delta_to_wire",
    "delta_from_wire",
]
