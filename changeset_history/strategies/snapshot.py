"""
Snapshot strategy: store complete before/after row images for every change.

Updates are compared with both ignore lists applied; when something logged
did change, the stored images keep the update-only columns so the history
stays readable and a full row can be restored.
"""

from __future__ import annotations

from typing import List, Optional

from changeset_history.domain.models import (
    ChangeRecord,
    ChangeType,
    MutationEvent,
    Representation,
    SnapshotChange,
    TableConfig,
)
from changeset_history.domain.values import RowImage, images_equal, strip_columns
from changeset_history.strategies.abstract import AbstractCaptureStrategy
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


class SnapshotStrategy(AbstractCaptureStrategy):
    """
    Full-image capture. Reconstruction is a direct lookup of the latest record.
    """

    name: str = "snapshot"
    description: str = "Complete old/new row images per change."

    def _encode(self, event: MutationEvent, config: TableConfig) -> List[Representation]:
        if event.change_type is ChangeType.INSERT:
            return [SnapshotChange(new_image=strip_columns(event.new, config.ignore_always))]

        if event.change_type.removes_row:
            return [SnapshotChange(old_image=strip_columns(event.old, config.ignore_always))]

        compared_new = strip_columns(event.new, config.update_exclusions)
        compared_old = strip_columns(event.old, config.update_exclusions)
        if images_equal(compared_new, compared_old):
            return []
        return [
            SnapshotChange(
                new_image=strip_columns(event.new, config.ignore_always),
                old_image=strip_columns(event.old, config.ignore_always),
            )
        ]

    def apply(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        rep = record.representation
        if record.change_type.removes_row:
            return None
        return dict(rep.new_image or {})

    def revert(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        rep = record.representation
        if record.change_type is ChangeType.INSERT:
            return None
        if record.change_type.removes_row:
            return dict(rep.old_image or {})
        if state is None:
            log.warning(
                "Reverting an update onto an absent row; history may be incomplete",
                extra={"table": record.table_name, "record_id": record.id},
            )
            state = {}
        restored = dict(state)
        restored.update(rep.old_image or {})
        return restored


__all__ = ["SnapshotStrategy"]
