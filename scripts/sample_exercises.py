"""
Worked examples of changes made to a sample table, recorded under either strategy.

Runs the sample exercise sequence (inserts, no-op updates, ignored-column
updates, a delete, single and multi-column updates, a JSON update, a bulk
clear) against the in-memory store, prints the recorded history, then
replays the table at each changeset time.

Usage:
    python -m scripts.sample_exercises --strategy delta
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import typer
from rich.console import Console

from changeset_history.capture import ChangeCapture
from changeset_history.domain.models import Strategy
from changeset_history.host import MemoryTable
from changeset_history.reconstructor import Reconstructor
from changeset_history.registry import ChangesetRegistry
from changeset_history.reporter import print_history, print_rows
from changeset_history.store.memory import InMemoryChangeStore
from changeset_history.tables import TableRegistry
from changeset_history.utils.logging import configure_logging

app = typer.Typer(help="Run the sample change exercises against the in-memory store.")

TABLE = "sample_logged_table"
PARAMS = {"some_param": "some_value", "another_param": 9876}
USER = "user_1234"

SAMPLE_ROWS = [
    {
        "id": 1,
        "text_col": "xxx",
        "int_col": 123,
        "float_col": 1.23,
        "col_to_ignore_updates": 999,
        "col_to_always_ignore": 888,
        "another_col_to_always_ignore": None,
        "jsonb_col": {"a": 123, "medal": "bronze"},
    },
    {
        "id": 2,
        "text_col": "yyy",
        "int_col": 456,
        "float_col": 4.56,
        "col_to_ignore_updates": 777,
        "col_to_always_ignore": 666,
        "another_col_to_always_ignore": None,
        "jsonb_col": {"b": 456, "medal": "silver"},
    },
    {
        "id": 3,
        "text_col": "zzz",
        "int_col": 789,
        "float_col": 7.89,
        "col_to_ignore_updates": 111,
        "col_to_always_ignore": 222,
        "another_col_to_always_ignore": None,
        "jsonb_col": {"c": 789, "medal": "gold"},
    },
]


class StepClock:
    """Clock advancing one minute per reading, so every changeset has its own time."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def _where(table: MemoryTable, column: str, value: object) -> List[int]:
    return [row["id"] for row in table.rows() if row[column] == value]


def build_exercises(table: MemoryTable) -> List[Tuple[str, Callable]]:
    """Pair each changeset label with the mutations it performs."""

    def insert(uow):
        for row in SAMPLE_ROWS:
            table.insert(uow, row)

    def update_where(column, value, changes):
        def run(uow):
            for key in _where(table, column, value):
                table.update(uow, key, changes)

        return run

    def delete_where(column, value):
        def run(uow):
            for key in _where(table, column, value):
                table.delete(uow, key)

        return run

    return [
        ("Change-001 insert some new test data. Expect 3 change_history log rows.", insert),
        (
            "Change-002 UPDATE has no effect (data is updated to its current value). "
            "Expect no change_history logs.",
            update_where("int_col", 123, {"text_col": "xxx"}),
        ),
        (
            "Change-003 UPDATE _only_ affects a column that is configured to be ignored. "
            "Expect no change_history logs.",
            update_where("int_col", 123, {"col_to_ignore_updates": 1000}),
        ),
        ("Change-004 DELETE a row. Expect 1 change_history log row.", delete_where("text_col", "xxx")),
        (
            "Change-005 UPDATE a column in a single row. Expect 1 change_history log row.",
            update_where("int_col", 456, {"text_col": "updated"}),
        ),
        (
            "Change-006 UPDATE multiple columns (int & float). Expect 1 change_history log row.",
            update_where("text_col", "zzz", {"int_col": 1000, "float_col": 99.99}),
        ),
        (
            "Change-007 UPDATE a JSONB column. Expect 1 change_history log row.",
            update_where("text_col", "zzz", {"jsonb_col": {"c": 789, "medal": "platinum"}}),
        ),
        (
            "Change-008 UPDATE multiple columns in a single row. Some columns are configured "
            "to be ignored. Expect 1 change_history log row.",
            update_where(
                "text_col",
                "zzz",
                {"int_col": 12, "col_to_ignore_updates": -7, "col_to_always_ignore": 45},
            ),
        ),
        ("Change-009 truncating the whole table. Expect 2 change_history log rows.", table.truncate),
    ]


def run_exercises(strategy: Strategy, clock: Optional[Callable[[], datetime]] = None):
    """
    Run every exercise in its own unit-of-work.

    Returns
    -------
    tuple
        ``(store, reconstructor, table, changeset_ids)``.
    """
    store = InMemoryChangeStore(clock=clock or StepClock())
    tables = TableRegistry()
    tables.enable(
        TABLE,
        strategy=strategy,
        pkey_columns=["id"],
        ignore_on_update=["col_to_ignore_updates"],
        ignore_always=["col_to_always_ignore", "another_col_to_always_ignore"],
    )
    registry = ChangesetRegistry(store)
    table = MemoryTable(TABLE, ["id"], ChangeCapture(store, tables))

    changeset_ids = []
    for operation, mutate in build_exercises(table):
        with store.unit_of_work() as uow:
            changeset_ids.append(registry.begin_change(uow, operation, PARAMS, USER))
            mutate(uow)
    return store, Reconstructor(store, tables), table, changeset_ids


@app.command()
def main(
    strategy: Strategy = typer.Option(Strategy.DELTA, "--strategy", "-s"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    configure_logging(level=log_level)
    console = Console()
    store, reconstructor, table, changeset_ids = run_exercises(strategy)

    print_history(
        reconstructor.history(TABLE), title=f"{TABLE} ({strategy.value})", console=console
    )
    for changeset_id in changeset_ids:
        changeset = store.get_changeset(changeset_id)
        rows = reconstructor.reconstruct_table(TABLE, table.rows(), changeset.time)
        print_rows(
            sorted(rows, key=lambda row: row["id"]),
            title=f"After changeset {changeset_id}: {changeset.operation[:11]}",
            console=console,
        )


if __name__ == "__main__":
    app()
