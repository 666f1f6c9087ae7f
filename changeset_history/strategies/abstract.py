"""
Abstract capture strategy interfaces.

A capture strategy decides what to record for each mutation of a tracked table
(``encode``) and how to replay what it recorded, forwards (``apply``) or
backwards (``revert``). Concrete strategies are snapshot (full before/after
images) and delta (changed fields plus primary key).
"""

from __future__ import annotations

import abc
from typing import List, Optional, Protocol, runtime_checkable

from changeset_history.domain.models import ChangeRecord, MutationEvent, Representation, TableConfig
from changeset_history.domain.values import RowImage
from changeset_history.errors import UnrepresentableValue


@runtime_checkable
class CaptureStrategy(Protocol):
    """
    Common interface all capture strategies implement.

    Attributes
    ----------
    name : str
        Machine-friendly identifier, equal to the ``Strategy`` enum value.
    description : str
        Human-friendly summary of what gets stored.
    """

    name: str
    description: str

    def encode(self, event: MutationEvent, config: TableConfig) -> List[Representation]:
        """
        Compute the representations to store for one mutation.

        Returns
        -------
        List[Representation]
            Empty when nothing worth logging changed.
        """
        ...

    def apply(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        """Return the row state after ``record``, given the state before it."""
        ...

    def revert(self, state: Optional[RowImage], record: ChangeRecord) -> Optional[RowImage]:
        """Return the row state before ``record``, given the state after it."""
        ...


class AbstractCaptureStrategy(abc.ABC):
    """
    ABC helper for class-based implementations.

    Subclasses set ``name`` and ``description`` and implement the three hooks.
    ``encode`` wraps ``_encode`` so that unrepresentable values always name
    the table they came from.
    """

    name: str
    description: str

    def encode(self, event: MutationEvent, config: TableConfig) -> List[Representation]:
        try:
            return self._encode(event, config)
        except UnrepresentableValue as exc:
            if exc.table_name is not None:
                raise
            raise exc.for_table(event.table_name) from exc

    @abc.abstractmethod
    def _encode(
        self, event: MutationEvent, config: TableConfig
    ) -> List[Representation]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def apply(
        self, state: Optional[RowImage], record: ChangeRecord
    ) -> Optional[RowImage]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def revert(
        self, state: Optional[RowImage], record: ChangeRecord
    ) -> Optional[RowImage]:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "CaptureStrategy",
    "AbstractCaptureStrategy",
]
