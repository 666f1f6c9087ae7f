"""
Registry of tracked tables.

Enabling tracking validates a TableConfig once; capture and reconstruction
then look the registration up by table name. Disabling stops future capture
but leaves recorded history in place.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from changeset_history.domain.models import Strategy, TableConfig
from changeset_history.errors import TableConfigError, TableNotTracked
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


class TableRegistry:
    """Thread-safe mapping of table name to its validated TableConfig."""

    def __init__(self, configs: Optional[Iterable[TableConfig]] = None) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, TableConfig] = {}
        for config in configs or ():
            self.register(config)

    def enable(
        self,
        table_name: str,
        strategy: Union[Strategy, str] = Strategy.SNAPSHOT,
        pkey_columns: Union[str, Iterable[str]] = (),
        ignore_on_update: Iterable[str] = (),
        ignore_always: Iterable[str] = (),
    ) -> TableConfig:
        """
        Start tracking ``table_name``.

        Parameters
        ----------
        table_name : str
            Name the host reports mutations under.
        strategy : Strategy or str
            ``snapshot`` (default) or ``delta``.
        pkey_columns : str or iterable of str
            Ordered primary key columns. Required for delta, and for
            reconstructing snapshot tables.
        ignore_on_update : iterable of str
            Columns left out of update comparisons only.
        ignore_always : iterable of str
            Columns never logged.

        Raises
        ------
        TableConfigError
            If the registration is invalid.
        """
        fields: Dict[str, Any] = {
            "table_name": table_name,
            "strategy": strategy,
            "pkey_columns": pkey_columns if isinstance(pkey_columns, str) else tuple(pkey_columns),
            "ignore_on_update": frozenset(ignore_on_update),
            "ignore_always": frozenset(ignore_always),
        }
        try:
            config = TableConfig(**fields)
        except ValidationError as exc:
            raise TableConfigError(f"Invalid registration for {table_name!r}: {exc}") from exc
        return self.register(config)

    def register(self, config: TableConfig) -> TableConfig:
        """Track a table from an already-built TableConfig, replacing any previous one."""
        with self._lock:
            replaced = config.table_name in self._tables
            self._tables[config.table_name] = config
        log.info(
            "Table tracking enabled",
            extra={
                "table": config.table_name,
                "strategy": config.strategy.value,
                "replaced": replaced,
            },
        )
        return config

    def disable(self, table_name: str) -> None:
        """
        Stop tracking ``table_name``. Recorded history is kept.

        Raises
        ------
        TableNotTracked
            If the table was not tracked.
        """
        with self._lock:
            if self._tables.pop(table_name, None) is None:
                raise TableNotTracked(table_name)
        log.info("Table tracking disabled", extra={"table": table_name})

    def get(self, table_name: str) -> Optional[TableConfig]:
        with self._lock:
            return self._tables.get(table_name)

    def require(self, table_name: str) -> TableConfig:
        config = self.get(table_name)
        if config is None:
            raise TableNotTracked(table_name)
        return config

    def is_tracked(self, table_name: str) -> bool:
        with self._lock:
            return table_name in self._tables

    def tracked_tables(self) -> List[str]:
        with self._lock:
            return sorted(self._tables)


__all__ = ["TableRegistry"]
