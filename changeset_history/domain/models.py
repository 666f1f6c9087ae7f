"""
Domain models for changeset capture.

Defines the persisted records (Changeset, ChangeRecord), the two families of
change representation (snapshot and delta), the per-table registration, and
the mutation event handed to the encoder. All models are frozen; history is
append-only.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    FrozenSet,
    Iterator,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from changeset_history.domain.values import RowImage, values_equal


class ChangeType(str, Enum):
    """
    Kind of row mutation. Values match the persisted ``changetype`` text.
    """

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BULK_CLEAR = "TRUNCATE"

    @property
    def removes_row(self) -> bool:
        return self in (ChangeType.DELETE, ChangeType.BULK_CLEAR)


class Strategy(str, Enum):
    """Storage strategy configured per tracked table."""

    SNAPSHOT = "snapshot"
    DELTA = "delta"


_FROZEN = ConfigDict(frozen=True)


class FieldChange(BaseModel):
    """Old and new value of one column changed by an update."""

    model_config = _FROZEN

    old: Any = None
    new: Any = None


class SnapshotChange(BaseModel):
    """
    Full before/after images. ``new_image`` is absent for deletes and bulk
    clears, ``old_image`` for inserts.
    """

    model_config = _FROZEN

    kind: Literal["snapshot"] = "snapshot"
    new_image: Optional[Dict[str, Any]] = None
    old_image: Optional[Dict[str, Any]] = None


class DeltaUpdate(BaseModel):
    """Changed columns of an update plus the primary key of the updated row."""

    model_config = _FROZEN

    kind: Literal["delta_update"] = "delta_update"
    pkey_fields: Dict[str, Any] = Field(default_factory=dict)
    changed_fields: Dict[str, FieldChange]


class DeltaImage(BaseModel):
    """Full row image recorded by delta mode for inserts, deletes and bulk clears."""

    model_config = _FROZEN

    kind: Literal["delta_image"] = "delta_image"
    full_image: Dict[str, Any]


Representation = Annotated[
    Union[SnapshotChange, DeltaUpdate, DeltaImage], Field(discriminator="kind")
]


class Changeset(BaseModel):
    """One attributable unit of change: who, when and what."""

    model_config = _FROZEN

    id: int = Field(..., description="Identity assigned by the store.")
    time: datetime = Field(..., description="Time the changeset was opened.")
    operation: str = Field(..., description="Short label describing the change.")
    params: Any = Field(None, description="Arbitrary structured attributes.")
    user_id: str = Field(..., description="User or bot making the change.")


class ChangeRecord(BaseModel):
    """One captured row-level change belonging to a changeset."""

    model_config = _FROZEN

    id: int
    changeset_id: int
    change_type: ChangeType
    table_name: str
    representation: Representation

    def images(self) -> Iterator[Mapping[str, Any]]:
        """Yield every captured mapping that carries primary key values."""
        rep = self.representation
        if isinstance(rep, SnapshotChange):
            for image in (rep.new_image, rep.old_image):
                if image is not None:
                    yield image
        elif isinstance(rep, DeltaUpdate):
            yield rep.pkey_fields
        else:
            yield rep.full_image

    def matches(self, pkey: Mapping[str, Any]) -> bool:
        """Whether this record concerns the row identified by ``pkey``."""
        for image in self.images():
            if all(
                column in image and values_equal(image[column], value)
                for column, value in pkey.items()
            ):
                return True
        return False

    def row_key(self, pkey_columns: Tuple[str, ...]) -> Tuple[Any, ...]:
        """Primary key tuple of the row this record concerns."""
        image = next(self.images(), {})
        return tuple(image.get(column) for column in pkey_columns)


class HistoryEntry(BaseModel):
    """A ChangeRecord joined with its Changeset, as returned by queries."""

    model_config = _FROZEN

    changeset: Changeset
    record: ChangeRecord

    @property
    def sort_key(self) -> Tuple[datetime, int]:
        return (self.changeset.time, self.record.id)


class TableConfig(BaseModel):
    """
    Registration of a tracked table, validated once when tracking is enabled.
    """

    model_config = _FROZEN

    table_name: str = Field(..., min_length=1)
    strategy: Strategy = Strategy.SNAPSHOT
    pkey_columns: Tuple[str, ...] = Field(
        default=(), description="Ordered primary key columns (required for delta)."
    )
    ignore_on_update: FrozenSet[str] = Field(
        default=frozenset(), description="Excluded from update comparisons only."
    )
    ignore_always: FrozenSet[str] = Field(
        default=frozenset(), description="Never logged, for any operation."
    )

    @field_validator("pkey_columns", mode="before")
    @classmethod
    def _listify_pkey(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @model_validator(mode="after")
    def _check_columns(self) -> "TableConfig":
        if len(set(self.pkey_columns)) != len(self.pkey_columns):
            raise ValueError(f"duplicate primary key columns for {self.table_name}")
        if self.strategy is Strategy.DELTA and not self.pkey_columns:
            raise ValueError(f"delta tracking of {self.table_name} needs pkey_columns")
        hidden = self.ignore_always.intersection(self.pkey_columns)
        if hidden:
            raise ValueError(
                f"primary key columns {sorted(hidden)} of {self.table_name} cannot be ignored"
            )
        return self

    @property
    def update_exclusions(self) -> FrozenSet[str]:
        return self.ignore_always | self.ignore_on_update


class MutationEvent(BaseModel):
    """A single mutation reported by the host through the capture hook."""

    model_config = _FROZEN

    table_name: str
    change_type: ChangeType
    old: Optional[Dict[str, Any]] = None
    new: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_images(self) -> "MutationEvent":
        needs_old = self.change_type is not ChangeType.INSERT
        needs_new = self.change_type in (ChangeType.INSERT, ChangeType.UPDATE)
        if needs_old and self.old is None:
            raise ValueError(f"{self.change_type.value} event needs the old row image")
        if needs_new and self.new is None:
            raise ValueError(f"{self.change_type.value} event needs the new row image")
        return self


__all__ = [
    "ChangeType",
    "Strategy",
    "FieldChange",
    "SnapshotChange",
    "DeltaUpdate",
    "DeltaImage",
    "Representation",
    "Changeset",
    "ChangeRecord",
    "HistoryEntry",
    "TableConfig",
    "MutationEvent",
    "RowImage",
]
