"""
PostgreSQL change store backed by psycopg 3.

Each unit-of-work borrows one pooled connection and runs inside one database
transaction, so the changeset row and its history rows commit or roll back
with the host's own writes when the host mutates through the same connection
(see ``PostgresUnitOfWork.connection``). Changeset time is the transaction's
``CURRENT_TIMESTAMP``, identical for every changeset opened in it; record ids
come from identity columns and break the tie.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from changeset_history.config import get_settings
from changeset_history.domain.codec import (
    delta_from_wire,
    delta_to_wire,
    snapshot_from_wire,
    snapshot_to_wire,
)
from changeset_history.domain.models import (
    ChangeRecord,
    Changeset,
    ChangeType,
    HistoryEntry,
    Representation,
    SnapshotChange,
    Strategy,
)
from changeset_history.errors import InvalidChangesetReference
from changeset_history.infrastructure.db_factory import (
    apply_statement_timeout,
    get_sync_connection,
    get_sync_pool,
)
from changeset_history.infrastructure.schema import DELTA_TABLE, SNAPSHOT_TABLE
from changeset_history.store.base import ChangeStore, UnitOfWork
from changeset_history.utils.logging import get_logger

log = get_logger(__name__)


def _jsonb(value: Any) -> Optional[Jsonb]:
    return Jsonb(value) if value is not None else None


class PostgresUnitOfWork(UnitOfWork):
    """UnitOfWork wrapping one open psycopg connection and transaction."""

    def __init__(self, connection: psycopg.Connection) -> None:
        super().__init__()
        self.connection = connection


class PostgresChangeStore(ChangeStore):
    """
    Change store persisting to the ``changeset`` / ``changeset_row_history_*`` tables.

    Parameters
    ----------
    pool : ConnectionPool, optional
        Pool to borrow connections from. Defaults to the shared PoolManager pool.
    dsn_override : str, optional
        Open a dedicated connection per unit-of-work instead of using a pool.
    schema : str, optional
        Schema holding the history tables. Defaults to settings.history_schema.
    statement_timeout_ms : int, optional
        Per-transaction statement timeout. Defaults to settings.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        dsn_override: Optional[str] = None,
        schema: Optional[str] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._pool = pool
        self._dsn_override = dsn_override
        self._schema = schema or settings.history_schema
        self._timeout_ms = (
            statement_timeout_ms
            if statement_timeout_ms is not None
            else settings.db_statement_timeout_ms
        )

    def _table(self, name: str) -> sql.Composed:
        return sql.SQL("{}.{}").format(sql.Identifier(self._schema), sql.Identifier(name))

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        if self._dsn_override:
            conn = get_sync_connection(self._dsn_override)
            try:
                yield conn
            finally:
                conn.close()
            return
        pool = self._pool or get_sync_pool()
        with pool.connection() as conn:
            yield conn

    @contextmanager
    def _transaction(self) -> Iterator[PostgresUnitOfWork]:
        with self._connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    apply_statement_timeout(cur, self._timeout_ms)
                yield PostgresUnitOfWork(conn)

    def create_changeset(
        self, uow: PostgresUnitOfWork, operation: str, params: Any, user_id: str
    ) -> Changeset:
        uow.require_active()
        stmt = sql.SQL(
            "INSERT INTO {} (time, operation, params, user_id)"
            " VALUES (CURRENT_TIMESTAMP, %s, %s, %s)"
            " RETURNING id, time, operation, params, user_id"
        ).format(self._table("changeset"))
        with uow.connection.cursor(row_factory=dict_row) as cur:
            cur.execute(stmt, (operation, _jsonb(params), user_id))
            row = cur.fetchone()
        return Changeset(**row)

    def update_changeset(
        self, uow: PostgresUnitOfWork, changeset_id: int, operation: str, params: Any
    ) -> Changeset:
        uow.require_active()
        stmt = sql.SQL(
            "UPDATE {} SET operation = %s, params = %s WHERE id = %s"
            " RETURNING id, time, operation, params, user_id"
        ).format(self._table("changeset"))
        with uow.connection.cursor(row_factory=dict_row) as cur:
            cur.execute(stmt, (operation, _jsonb(params), changeset_id))
            row = cur.fetchone()
        if row is None:
            raise InvalidChangesetReference(changeset_id)
        return Changeset(**row)

    def get_changeset(self, changeset_id: int) -> Optional[Changeset]:
        stmt = sql.SQL(
            "SELECT id, time, operation, params, user_id FROM {} WHERE id = %s"
        ).format(self._table("changeset"))
        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(stmt, (changeset_id,))
                row = cur.fetchone()
        return Changeset(**row) if row else None

    def append(
        self,
        uow: PostgresUnitOfWork,
        changeset_id: int,
        change_type: ChangeType,
        table_name: str,
        representation: Representation,
    ) -> ChangeRecord:
        uow.require_active()
        if isinstance(representation, SnapshotChange):
            record, old_record = snapshot_to_wire(representation)
            stmt = sql.SQL(
                "INSERT INTO {} (changeset_id, changetype, table_name, record, old_record)"
                " VALUES (%s, %s, %s, %s, %s) RETURNING id"
            ).format(self._table(SNAPSHOT_TABLE))
            params: tuple = (
                changeset_id,
                change_type.value,
                table_name,
                _jsonb(record),
                _jsonb(old_record),
            )
        else:
            stmt = sql.SQL(
                "INSERT INTO {} (changeset_id, changetype, table_name, change)"
                " VALUES (%s, %s, %s, %s) RETURNING id"
            ).format(self._table(DELTA_TABLE))
            params = (
                changeset_id,
                change_type.value,
                table_name,
                Jsonb(delta_to_wire(representation)),
            )

        try:
            with uow.connection.cursor() as cur:
                cur.execute(stmt, params)
                (record_id,) = cur.fetchone()
        except psycopg.errors.ForeignKeyViolation as exc:
            raise InvalidChangesetReference(changeset_id) from exc

        return ChangeRecord(
            id=record_id,
            changeset_id=changeset_id,
            change_type=change_type,
            table_name=table_name,
            representation=representation,
        )

    def query(
        self,
        table_name: str,
        strategy: Strategy,
        pkey: Optional[Mapping[str, Any]] = None,
        after: Optional[datetime] = None,
        until: Optional[datetime] = None,
        descending: bool = False,
    ) -> List[HistoryEntry]:
        if strategy is Strategy.SNAPSHOT:
            columns = sql.SQL("h.record, h.old_record")
            history = self._table(SNAPSHOT_TABLE)
            key_filter = sql.SQL("(h.record @> %(pkey)s OR h.old_record @> %(pkey)s)")
        else:
            columns = sql.SQL("h.change")
            history = self._table(DELTA_TABLE)
            key_filter = sql.SQL("h.change @> %(pkey)s")

        conditions = [sql.SQL("h.table_name = %(table_name)s")]
        args: Dict[str, Any] = {"table_name": table_name}
        if pkey is not None:
            conditions.append(key_filter)
            args["pkey"] = Jsonb(dict(pkey))
        if after is not None:
            conditions.append(sql.SQL("c.time > %(after)s"))
            args["after"] = after
        if until is not None:
            conditions.append(sql.SQL("c.time <= %(until)s"))
            args["until"] = until

        direction = sql.SQL("DESC" if descending else "ASC")
        stmt = sql.SQL(
            "SELECT c.id AS changeset_id, c.time, c.operation, c.params, c.user_id,"
            " h.id, h.changetype, h.table_name, {columns}"
            " FROM {history} h JOIN {changeset} c ON c.id = h.changeset_id"
            " WHERE {conditions}"
            " ORDER BY c.time {direction}, h.id {direction}"
        ).format(
            columns=columns,
            history=history,
            changeset=self._table("changeset"),
            conditions=sql.SQL(" AND ").join(conditions),
            direction=direction,
        )

        with self._connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(stmt, args)
                rows = cur.fetchall()

        log.debug(
            "History queried",
            extra={"table": table_name, "strategy": strategy.value, "entries": len(rows)},
        )
        return [self._entry(strategy, row) for row in rows]

    @staticmethod
    def _entry(strategy: Strategy, row: Dict[str, Any]) -> HistoryEntry:
        change_type = ChangeType(row["changetype"])
        if strategy is Strategy.SNAPSHOT:
            representation = snapshot_from_wire(row["record"], row["old_record"])
        else:
            representation = delta_from_wire(change_type, row["change"])
        changeset = Changeset(
            id=row["changeset_id"],
            time=row["time"],
            operation=row["operation"],
            params=row["params"],
            user_id=row["user_id"],
        )
        record = ChangeRecord(
            id=row["id"],
            changeset_id=row["changeset_id"],
            change_type=change_type,
            table_name=row["table_name"],
            representation=representation,
        )
        return HistoryEntry(changeset=changeset, record=record)


__all__ = ["PostgresChangeStore", "PostgresUnitOfWork"]
