"""
DDL for the history tables.

The layout is compatible with existing trigger-based installations:
``changeset``, ``changeset_row_history_snapshot`` and
``changeset_row_history_delta``. Installing is idempotent; uninstalling drops
the history for good.
"""

from __future__ import annotations

from typing import List

import psycopg
from psycopg import sql

from changeset_history.utils.logging import get_logger

log = get_logger(__name__)

CHANGESET_TABLE = "changeset"
SNAPSHOT_TABLE = "changeset_row_history_snapshot"
DELTA_TABLE = "changeset_row_history_delta"

_CREATE_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS {schema}.changeset (
      id int GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY
      , time timestamp with time zone NOT NULL
      , operation text NOT NULL
      , params jsonb
      , user_id text NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS {schema}.changeset_row_history_snapshot (
      id int GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY
      , changeset_id int REFERENCES {schema}.changeset(id) NOT NULL
      , changetype text NOT NULL
      , table_name text NOT NULL
      , record jsonb
      , old_record jsonb
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS {schema}.changeset_row_history_delta (
      id int GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY
      , changeset_id int REFERENCES {schema}.changeset(id) NOT NULL
      , changetype text NOT NULL
      , table_name text NOT NULL
      , change jsonb NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS changeset_row_history_snapshot_table_idx"
    " ON {schema}.changeset_row_history_snapshot (table_name, changeset_id)",
    "CREATE INDEX IF NOT EXISTS changeset_row_history_delta_table_idx"
    " ON {schema}.changeset_row_history_delta (table_name, changeset_id)",
]

_DROP_STATEMENTS = [
    "DROP TABLE IF EXISTS {schema}.changeset_row_history_delta CASCADE",
    "DROP TABLE IF EXISTS {schema}.changeset_row_history_snapshot CASCADE",
    "DROP TABLE IF EXISTS {schema}.changeset CASCADE",
]


def _render(statements: List[str], schema: str) -> List[sql.Composed]:
    return [sql.SQL(stmt).format(schema=sql.Identifier(schema)) for stmt in statements]


def install_statements(schema: str = "public") -> List[sql.Composed]:
    """Statements that create the history tables in ``schema``."""
    return _render(_CREATE_STATEMENTS, schema)


def uninstall_statements(schema: str = "public") -> List[sql.Composed]:
    """Statements that drop the history tables from ``schema``."""
    return _render(_DROP_STATEMENTS, schema)


def install_schema(conn: psycopg.Connection, schema: str = "public") -> None:
    """Create the history tables (if missing) and commit."""
    with conn.transaction():
        with conn.cursor() as cur:
            for statement in install_statements(schema):
                cur.execute(statement)
    log.info("History tables installed", extra={"schema": schema})


def uninstall_schema(conn: psycopg.Connection, schema: str = "public") -> None:
    """Drop the history tables and everything recorded in them."""
    with conn.transaction():
        with conn.cursor() as cur:
            for statement in uninstall_statements(schema):
                cur.execute(statement)
    log.warning("History tables dropped", extra={"schema": schema})


__all__ = [
    "CHANGESET_TABLE",
    "DELTA_TABLE",
    "SNAPSHOT_TABLE",
    "install_schema",
    "install_statements",
    "uninstall_schema",
    "uninstall_statements",
]
