"""
Change store contract and the unit-of-work handle.

A UnitOfWork is the transactional scope a host opens around a batch of
mutations. It carries the id of the changeset opened inside it, so the
binding is passed explicitly to every capture call and never lives in a
process-wide global. The binding is released when the unit-of-work ends,
whether it commits or rolls back.
"""

from __future__ import annotations

import abc
import itertools
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterator, List, Mapping, Optional

from changeset_history.domain.models import (
    ChangeRecord,
    Changeset,
    ChangeType,
    DeltaImage,
    DeltaUpdate,
    HistoryEntry,
    Representation,
    SnapshotChange,
    Strategy,
)
from changeset_history.errors import NoActiveChangeset, NoActiveUnitOfWork

_uow_ids = itertools.count(1)


class UnitOfWork:
    """
    Handle for one host transaction.

    Stores hand these out from ``ChangeStore.unit_of_work()``; hosts pass them
    to the registry and the capture hook. Instances are not shared between
    threads.
    """

    def __init__(self) -> None:
        self.id = next(_uow_ids)
        self._active = True
        self._changeset_id: Optional[int] = None
        self._rollback_hooks: List[Callable[[], None]] = []

    @property
    def active(self) -> bool:
        return self._active

    @property
    def changeset_id(self) -> Optional[int]:
        return self._changeset_id

    def bind(self, changeset_id: int) -> None:
        self.require_active()
        self._changeset_id = changeset_id

    def require_active(self) -> None:
        if not self._active:
            raise NoActiveUnitOfWork(f"Unit of work {self.id} has already finished")

    def require_changeset(self) -> int:
        """
        Return the bound changeset id.

        Raises
        ------
        NoActiveChangeset
            If ``begin_change`` was not called in this unit-of-work.
        """
        self.require_active()
        if self._changeset_id is None:
            raise NoActiveChangeset(
                "No changeset is bound to this unit of work; call begin_change first"
            )
        return self._changeset_id

    def on_rollback(self, hook: Callable[[], None]) -> None:
        """Register an undo action for host state kept outside the store."""
        self.require_active()
        self._rollback_hooks.append(hook)

    def rollback_hooks(self) -> List[Callable[[], None]]:
        """Registered undo actions, newest first."""
        return list(reversed(self._rollback_hooks))

    def close(self) -> None:
        self._active = False
        self._changeset_id = None
        self._rollback_hooks.clear()


def representation_matches(strategy: Strategy, rep: Representation) -> bool:
    """Whether ``rep`` was produced by ``strategy``."""
    if strategy is Strategy.SNAPSHOT:
        return isinstance(rep, SnapshotChange)
    return isinstance(rep, (DeltaUpdate, DeltaImage))


class ChangeStore(abc.ABC):
    """
    Append-only persistence for changesets and change records.

    Writes happen inside a unit-of-work and become visible to ``query`` only
    when it commits. Rolling back discards the changeset and all its records.
    """

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        """
        Open a unit-of-work: commit on normal exit, roll back on exception.

        On rollback the hooks registered with ``UnitOfWork.on_rollback`` run
        newest first, before the store discards its own writes.

        Example
        -------
            with store.unit_of_work() as uow:
                registry.begin_change(uow, "import", {"rows": 3}, "user_1234")
                table.insert(uow, {...})
        """
        with self._transaction() as uow:
            try:
                yield uow
            except BaseException:
                for hook in uow.rollback_hooks():
                    hook()
                raise
            finally:
                uow.close()

    @abc.abstractmethod
    def _transaction(self) -> ContextManager[UnitOfWork]:  # pragma: no cover - interface only
        """Open the backing transaction and yield a bound UnitOfWork."""
        raise NotImplementedError

    @abc.abstractmethod
    def create_changeset(
        self, uow: UnitOfWork, operation: str, params: Any, user_id: str
    ) -> Changeset:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def update_changeset(
        self, uow: UnitOfWork, changeset_id: int, operation: str, params: Any
    ) -> Changeset:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def get_changeset(self, changeset_id: int) -> Optional[Changeset]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def append(
        self,
        uow: UnitOfWork,
        changeset_id: int,
        change_type: ChangeType,
        table_name: str,
        representation: Representation,
    ) -> ChangeRecord:  # pragma: no cover - interface only
        """
        Append one record and return it with its assigned id.

        Raises
        ------
        InvalidChangesetReference
            If ``changeset_id`` does not exist.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def query(
        self,
        table_name: str,
        strategy: Strategy,
        pkey: Optional[Mapping[str, Any]] = None,
        after: Optional[datetime] = None,
        until: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[HistoryEntry]:  # pragma: no cover - interface only
        """
        Return committed history for a table ordered by ``(changeset.time, record.id)``.

        Parameters
        ----------
        table_name : str
            Tracked table to read.
        strategy : Strategy
            Which history the table was captured into.
        pkey : Mapping[str, Any], optional
            Restrict to records concerning the row with these key values.
        after : datetime, optional
            Exclusive lower bound on changeset time.
        until : datetime, optional
            Inclusive upper bound on changeset time.
        descending : bool
            Newest first when True.
        """
        raise NotImplementedError


__all__ = [
    "ChangeStore",
    "UnitOfWork",
    "representation_matches",
]
