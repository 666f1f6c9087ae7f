"""
Changeset lifecycle.

``begin_change`` opens a changeset and binds its id to the unit-of-work; every
capture in that unit-of-work is attributed to it. ``reset_change`` relabels
the bound changeset before commit. The binding ends with the unit-of-work.

Usage:
    registry = ChangesetRegistry(store)
    with store.unit_of_work() as uow:
        registry.begin_change(uow, "fix typo", {"ticket": 42}, "user_1234")
        ...
"""

from __future__ import annotations

from typing import Any, Optional

from changeset_history.domain.models import Changeset
from changeset_history.domain.values import to_structured
from changeset_history.errors import UnrepresentableValue
from changeset_history.store.base import ChangeStore, UnitOfWork
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


def _structured_params(params: Any) -> Any:
    try:
        return to_structured("params", params)
    except UnrepresentableValue as exc:
        raise exc.for_table("changeset") from exc


class ChangesetRegistry:
    """Opens and relabels changesets through a ChangeStore."""

    def __init__(self, store: ChangeStore) -> None:
        self.store = store

    def begin_change(
        self, uow: UnitOfWork, operation: str, params: Any, user_id: str
    ) -> int:
        """
        Create a changeset and bind it to ``uow``.

        Calling it again in the same unit-of-work opens another changeset and
        rebinds; later captures go to the newest one.

        Parameters
        ----------
        uow : UnitOfWork
            Active unit-of-work of the host.
        operation : str
            Short label describing the change.
        params : Any
            Structured attributes of the operation, or None.
        user_id : str
            User or bot making the change.

        Returns
        -------
        int
            The new changeset id.

        Raises
        ------
        NoActiveUnitOfWork
            If ``uow`` has already finished.
        UnrepresentableValue
            If ``params`` has no structured form.
        """
        uow.require_active()
        changeset = self.store.create_changeset(
            uow, operation, _structured_params(params), user_id
        )
        uow.bind(changeset.id)
        log.info(
            "Changeset opened",
            extra={
                "changeset_id": changeset.id,
                "operation": operation,
                "user_id": user_id,
                "uow": uow.id,
            },
        )
        return changeset.id

    def reset_change(self, uow: UnitOfWork, operation: str, params: Any) -> Changeset:
        """
        Replace operation and params of the changeset bound to ``uow``.

        user_id, time and already captured records are left untouched.

        Raises
        ------
        NoActiveChangeset
            If no changeset is bound to ``uow``.
        """
        changeset_id = uow.require_changeset()
        changeset = self.store.update_changeset(
            uow, changeset_id, operation, _structured_params(params)
        )
        log.info(
            "Changeset relabelled",
            extra={"changeset_id": changeset_id, "operation": operation, "uow": uow.id},
        )
        return changeset

    @staticmethod
    def current_changeset(uow: UnitOfWork) -> Optional[int]:
        return uow.changeset_id if uow.active else None


__all__ = ["ChangesetRegistry"]
