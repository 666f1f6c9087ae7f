from __future__ import annotations

import json
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import typer

from changeset_history.capture import ChangeCapture
from changeset_history.config import get_settings
from changeset_history.domain.models import Strategy
from changeset_history.encoder import available_strategies
from changeset_history.errors import ChangesetHistoryError
from changeset_history.host import PostgresTable
from changeset_history.infrastructure.db_factory import get_sync_connection
from changeset_history.infrastructure.schema import install_schema, uninstall_schema
from changeset_history.reconstructor import Reconstructor
from changeset_history.reporter import print_history, print_rows
from changeset_history.store.postgres import PostgresChangeStore
from changeset_history.tables import TableRegistry
from changeset_history.utils.logging import configure_logging

app = typer.Typer(help="Changeset history CLI: install, inspect and replay table history.")


def parse_pkey(pairs: List[str]) -> Optional[Dict[str, Any]]:
    """
    Turn ``col=value`` pairs into a key mapping. Values are read as JSON when
    they parse (``id=1`` gives an int), as plain strings otherwise.
    """
    if not pairs:
        return None
    key: Dict[str, Any] = {}
    for pair in pairs:
        column, sep, raw = pair.partition("=")
        if not sep or not column:
            raise typer.BadParameter(f"Expected col=value, got {pair!r}", param_hint="--pkey")
        try:
            key[column] = json.loads(raw)
        except json.JSONDecodeError:
            key[column] = raw
    return key


def parse_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise typer.BadParameter(f"Not an ISO-8601 time: {value!r}") from exc


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"schema={settings.history_schema} timeout={settings.db_statement_timeout_ms}ms "
        f"strategies={','.join(available_strategies())}"
    )


@app.command()
def install(
    schema: Optional[str] = typer.Option(None, "--schema", help="Schema for the history tables."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Override DSN (default from settings)."),
) -> None:
    """
    Create the changeset and history tables (idempotent).
    """
    _setup()
    target = schema or get_settings().history_schema
    with get_sync_connection(dsn) as conn:
        install_schema(conn, target)
    typer.echo(f"History tables installed in schema '{target}'.")


@app.command()
def uninstall(
    schema: Optional[str] = typer.Option(None, "--schema", help="Schema holding the history tables."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Override DSN (default from settings)."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """
    Drop the changeset and history tables, and all recorded history.
    """
    _setup()
    target = schema or get_settings().history_schema
    if not yes:
        typer.confirm(f"Drop all recorded history in schema '{target}'?", abort=True)
    with get_sync_connection(dsn) as conn:
        uninstall_schema(conn, target)
    typer.echo(f"History tables dropped from schema '{target}'.")


@app.command()
def history(
    table: str = typer.Argument(..., help="Tracked table name."),
    strategy: Strategy = typer.Option(Strategy.SNAPSHOT, "--strategy", "-s"),
    pkey: List[str] = typer.Option([], "--pkey", "-k", help="Row key as col=value (repeatable)."),
    until: Optional[str] = typer.Option(None, "--until", help="Only changes at or before this time."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Override DSN (default from settings)."),
) -> None:
    """
    Print the recorded history of a table, or of one row.
    """
    _setup()
    store = PostgresChangeStore(dsn_override=dsn)
    entries = store.query(table, strategy, pkey=parse_pkey(pkey), until=parse_time(until))
    print_history(entries, title=f"History of {table} ({strategy.value})")


@app.command()
def reconstruct(
    table: str = typer.Argument(..., help="Tracked table name."),
    at: str = typer.Option(..., "--at", help="Target time (ISO-8601)."),
    pkey_column: List[str] = typer.Option(
        ..., "--pkey-column", "-c", help="Primary key column (repeatable, in order)."
    ),
    strategy: Strategy = typer.Option(Strategy.SNAPSHOT, "--strategy", "-s"),
    pkey: List[str] = typer.Option(
        [], "--pkey", "-k", help="Reconstruct one row: col=value (repeatable)."
    ),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Override DSN (default from settings)."),
) -> None:
    """
    Show a row (with --pkey) or the whole table as it was at --at.

    Row mode replays history only. Table mode starts from the live table and
    reverts every later change.
    """
    _setup()
    target = parse_time(at)
    store = PostgresChangeStore(dsn_override=dsn)
    tables = TableRegistry()
    try:
        tables.enable(table, strategy=strategy, pkey_columns=pkey_column)
        reconstructor = Reconstructor(store, tables)
        key = parse_pkey(pkey)
        if key is not None:
            row = reconstructor.reconstruct_row(table, key, target)
            print_rows([row], title=f"{table} {key} at {target.isoformat()}")
            return
        with store.unit_of_work() as uow:
            live = PostgresTable(table, pkey_column, ChangeCapture(store, tables)).rows(uow)
        rows = reconstructor.reconstruct_table(table, live, target)
        print_rows(rows, title=f"{table} at {target.isoformat()}")
    except (ChangesetHistoryError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
