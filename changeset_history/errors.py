"""
Exception taxonomy for changeset capture and reconstruction.

Every error raised by the package derives from ChangesetHistoryError so hosts
can abort the enclosing unit-of-work with a single except clause. None of
these are retried: capture is a synchronous, transactional write.
"""

from __future__ import annotations

from typing import Optional


class ChangesetHistoryError(Exception):
    """Base class for all changeset_history errors."""


class NoActiveChangeset(ChangesetHistoryError):
    """
    Raised when a capture or reset happens with no changeset bound to the
    current unit-of-work. Callers must call ``begin_change`` before mutating
    tracked tables.
    """


class NoActiveUnitOfWork(ChangesetHistoryError):
    """Raised when a registry or store call receives a finished unit-of-work."""


class InvalidChangesetReference(ChangesetHistoryError):
    """Raised when a record is appended against a changeset id that does not exist."""

    def __init__(self, changeset_id: int) -> None:
        super().__init__(f"Changeset {changeset_id} does not exist")
        self.changeset_id = changeset_id


class UnrepresentableValue(ChangesetHistoryError):
    """
    Raised when a captured column holds a value outside the structured-value
    model (e.g. binary data). Add the column to ``ignore_always`` to track the
    table anyway.
    """

    def __init__(
        self,
        column: str,
        value_type: str,
        table_name: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        where = f"{table_name}.{column}" if table_name else column
        message = f"Column {where} holds an unrepresentable {value_type} value"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message + "; add it to ignore_always to skip it")
        self.column = column
        self.value_type = value_type
        self.table_name = table_name
        self.reason = reason

    def for_table(self, table_name: str) -> "UnrepresentableValue":
        """Return a copy of this error that names the owning table."""
        return UnrepresentableValue(
            self.column, self.value_type, table_name=table_name, reason=self.reason
        )


class TableConfigError(ChangesetHistoryError, ValueError):
    """Raised when a table registration is invalid."""


class TableNotTracked(ChangesetHistoryError, KeyError):
    """Raised when an operation needs the registration of an untracked table."""

    def __init__(self, table_name: str) -> None:
        super().__init__(table_name)
        self.table_name = table_name

    def __str__(self) -> str:
        return f"Table '{self.table_name}' is not tracked"


__all__ = [
    "ChangesetHistoryError",
    "NoActiveChangeset",
    "NoActiveUnitOfWork",
    "InvalidChangesetReference",
    "UnrepresentableValue",
    "TableConfigError",
    "TableNotTracked",
]
