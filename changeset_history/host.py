"""
Reference host tables that fire the capture hook on every mutation.

MemoryTable keeps rows in a dict keyed by primary key and undoes its writes
when the unit-of-work rolls back. PostgresTable runs real DML on the
unit-of-work's connection, so table writes and history commit together.

In both, a failing capture call leaves no trace of the mutation: MemoryTable
captures before writing, PostgresTable's transaction rolls back.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from changeset_history.capture import ChangeCapture
from changeset_history.store.base import UnitOfWork
from changeset_history.store.postgres import PostgresUnitOfWork
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)

Row = Dict[str, Any]


def _key_tuple(pkey_columns: Tuple[str, ...], key: Any) -> Tuple[Any, ...]:
    if isinstance(key, Mapping):
        return tuple(key[column] for column in pkey_columns)
    values = key if isinstance(key, tuple) else (key,)
    if len(values) != len(pkey_columns):
        raise ValueError(f"Expected {len(pkey_columns)} key value(s), got {len(values)}")
    return values


class MemoryTable:
    """
    Dict-backed table.

    Parameters
    ----------
    name : str
        Table name reported to the capture hook.
    pkey_columns : iterable of str
        Primary key columns. Keys are immutable once a row exists.
    capture : ChangeCapture
        Hook fired for each mutation.
    """

    def __init__(self, name: str, pkey_columns: Iterable[str], capture: ChangeCapture) -> None:
        self.name = name
        self.pkey_columns = tuple(pkey_columns)
        if not self.pkey_columns:
            raise ValueError("MemoryTable needs at least one primary key column")
        self.capture = capture
        # Reentrant so truncate can hold it across the per-row capture calls.
        self._lock = threading.RLock()
        self._rows: Dict[Tuple[Any, ...], Row] = {}

    def _key_of(self, row: Mapping[str, Any]) -> Tuple[Any, ...]:
        missing = [column for column in self.pkey_columns if column not in row]
        if missing:
            raise ValueError(f"Row for {self.name} lacks primary key column(s) {missing}")
        return tuple(row[column] for column in self.pkey_columns)

    def _restore(self, key: Tuple[Any, ...], row: Optional[Row]) -> None:
        with self._lock:
            if row is None:
                self._rows.pop(key, None)
            else:
                self._rows[key] = row

    def get(self, key: Any) -> Optional[Row]:
        with self._lock:
            row = self._rows.get(_key_tuple(self.pkey_columns, key))
            return dict(row) if row is not None else None

    def rows(self) -> List[Row]:
        with self._lock:
            return [dict(row) for row in self._rows.values()]

    def insert(self, uow: UnitOfWork, row: Mapping[str, Any]) -> Row:
        new = dict(row)
        key = self._key_of(new)
        with self._lock:
            if key in self._rows:
                raise ValueError(f"Duplicate key {key} in {self.name}")
            self.capture.on_insert(uow, self.name, new)
            self._rows[key] = new
            uow.on_rollback(lambda: self._restore(key, None))
        return dict(new)

    def update(self, uow: UnitOfWork, key: Any, changes: Mapping[str, Any]) -> Row:
        """Apply ``changes`` to the row with ``key`` and return the new row."""
        key = _key_tuple(self.pkey_columns, key)
        with self._lock:
            old = self._rows.get(key)
            if old is None:
                raise KeyError(key)
            new = {**old, **changes}
            if self._key_of(new) != key:
                raise ValueError(f"Primary key of {self.name} rows cannot change")
            self.capture.on_update(uow, self.name, old, new)
            self._rows[key] = new
            uow.on_rollback(lambda: self._restore(key, old))
        return dict(new)

    def delete(self, uow: UnitOfWork, key: Any) -> Row:
        key = _key_tuple(self.pkey_columns, key)
        with self._lock:
            old = self._rows.get(key)
            if old is None:
                raise KeyError(key)
            self.capture.on_delete(uow, self.name, old)
            del self._rows[key]
            uow.on_rollback(lambda: self._restore(key, old))
        return dict(old)

    def truncate(self, uow: UnitOfWork) -> int:
        """Remove every row, recording each one as a bulk clear. Returns the count."""
        with self._lock:
            surviving = dict(self._rows)
            self.capture.on_bulk_clear(uow, self.name, list(surviving.values()))
            self._rows.clear()
            uow.on_rollback(lambda: self._restore_all(surviving))
        log.debug("Table cleared", extra={"table": self.name, "rows": len(surviving)})
        return len(surviving)

    def _restore_all(self, rows: Dict[Tuple[Any, ...], Row]) -> None:
        with self._lock:
            self._rows.update(rows)


def _adapt(value: Any) -> Any:
    return Jsonb(value) if isinstance(value, dict) else value


class PostgresTable:
    """
    Host table living in PostgreSQL.

    Mutations run on the connection of a PostgresUnitOfWork, inside its
    transaction. ``name`` may be schema-qualified (``schema.table``).
    """

    def __init__(self, name: str, pkey_columns: Iterable[str], capture: ChangeCapture) -> None:
        self.name = name
        self.pkey_columns = tuple(pkey_columns)
        if not self.pkey_columns:
            raise ValueError("PostgresTable needs at least one primary key column")
        self.capture = capture
        self._ident = sql.Identifier(*name.split("."))

    def _where(self, key: Any) -> Tuple[sql.Composed, Tuple[Any, ...]]:
        values = _key_tuple(self.pkey_columns, key)
        clause = sql.SQL(" AND ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in self.pkey_columns
        )
        return clause, values

    def _fetch(self, uow: PostgresUnitOfWork, stmt: sql.Composable, params: Any) -> List[Row]:
        with uow.connection.cursor(row_factory=dict_row) as cur:
            cur.execute(stmt, params)
            return cur.fetchall() if cur.description else []

    def get(self, uow: PostgresUnitOfWork, key: Any) -> Optional[Row]:
        where, values = self._where(key)
        rows = self._fetch(
            uow, sql.SQL("SELECT * FROM {} WHERE {}").format(self._ident, where), values
        )
        return rows[0] if rows else None

    def rows(self, uow: PostgresUnitOfWork) -> List[Row]:
        return self._fetch(uow, sql.SQL("SELECT * FROM {}").format(self._ident), None)

    def insert(self, uow: PostgresUnitOfWork, row: Mapping[str, Any]) -> Row:
        columns = list(row)
        stmt = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            self._ident,
            sql.SQL(", ").join(map(sql.Identifier, columns)),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        (new,) = self._fetch(uow, stmt, [_adapt(row[column]) for column in columns])
        self.capture.on_insert(uow, self.name, new)
        return new

    def update(self, uow: PostgresUnitOfWork, key: Any, changes: Mapping[str, Any]) -> Row:
        """Update one row by key and return the new row."""
        if set(changes) & set(self.pkey_columns):
            raise ValueError(f"Primary key of {self.name} rows cannot change")
        where, values = self._where(key)
        old_rows = self._fetch(
            uow, sql.SQL("SELECT * FROM {} WHERE {} FOR UPDATE").format(self._ident, where), values
        )
        if not old_rows:
            raise KeyError(values)
        columns = list(changes)
        stmt = sql.SQL("UPDATE {} SET {} WHERE {} RETURNING *").format(
            self._ident,
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in columns
            ),
            where,
        )
        params = [_adapt(changes[column]) for column in columns] + list(values)
        (new,) = self._fetch(uow, stmt, params)
        self.capture.on_update(uow, self.name, old_rows[0], new)
        return new

    def delete(self, uow: PostgresUnitOfWork, key: Any) -> Row:
        where, values = self._where(key)
        rows = self._fetch(
            uow, sql.SQL("DELETE FROM {} WHERE {} RETURNING *").format(self._ident, where), values
        )
        if not rows:
            raise KeyError(values)
        self.capture.on_delete(uow, self.name, rows[0])
        return rows[0]

    def truncate(self, uow: PostgresUnitOfWork) -> int:
        """Lock the table, record every surviving row, then truncate it."""
        with uow.connection.cursor() as cur:
            cur.execute(sql.SQL("LOCK TABLE {} IN ACCESS EXCLUSIVE MODE").format(self._ident))
        surviving = self.rows(uow)
        self.capture.on_bulk_clear(uow, self.name, surviving)
        with uow.connection.cursor() as cur:
            cur.execute(sql.SQL("TRUNCATE {}").format(self._ident))
        log.debug("Table truncated", extra={"table": self.name, "rows": len(surviving)})
        return len(surviving)


__all__ = ["MemoryTable", "PostgresTable"]
