"""
Domain package for changeset capture.

Exports the data model (changesets, change records, representations, table
registrations) and the structured-value helpers. Keep this package free of
I/O concerns.
"""

from changeset_history.domain.models import (
    ChangeRecord,
    Changeset,
    ChangeType,
    DeltaImage,
    DeltaUpdate,
    FieldChange,
    HistoryEntry,
    MutationEvent,
    Representation,
    SnapshotChange,
    Strategy,
    TableConfig,
)
from changeset_history.domain.values import RowImage, images_equal, to_structured, values_equal

__all__ = [
    "ChangeRecord",
    "Changeset",
    "ChangeType",
    "DeltaImage",
    "DeltaUpdate",
    "FieldChange",
    "HistoryEntry",
    "MutationEvent",
    "Representation",
    "SnapshotChange",
    "Strategy",
    "TableConfig",
    "RowImage",
    "images_equal",
    "to_structured",
    "values_equal",
]
