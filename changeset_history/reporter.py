from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from changeset_history.domain.models import (
    DeltaImage,
    DeltaUpdate,
    HistoryEntry,
    Representation,
    SnapshotChange,
)
from changeset_history.domain.values import values_equal

_CHANGE_STYLES = {
    "INSERT": "green",
    "UPDATE": "yellow",
    "DELETE": "red",
    "TRUNCATE": "bold red",
}


def _render_value(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def describe_representation(rep: Representation) -> str:
    """
    One-line summary of what a record captured.

    Updates show ``column: old -> new`` for every changed column; full images
    show the row itself.
    """
    if isinstance(rep, DeltaUpdate):
        key = ", ".join(f"{k}={_render_value(v)}" for k, v in rep.pkey_fields.items())
        changes = "; ".join(
            f"{column}: {_render_value(change.old)} -> {_render_value(change.new)}"
            for column, change in rep.changed_fields.items()
        )
        return f"[{key}] {changes}"
    if isinstance(rep, DeltaImage):
        return _render_value(rep.full_image)
    if isinstance(rep, SnapshotChange):
        if rep.new_image is not None and rep.old_image is not None:
            changed = sorted(
                column
                for column in set(rep.new_image) | set(rep.old_image)
                if not values_equal(rep.new_image.get(column), rep.old_image.get(column))
            )
            return f"{_render_value(rep.new_image)} (changed: {', '.join(changed) or '-'})"
        return _render_value(rep.new_image if rep.new_image is not None else rep.old_image)
    return repr(rep)


def print_history(
    entries: Sequence[HistoryEntry], title: str = "Change history", console: Optional[Console] = None
) -> None:
    """
    Render history entries as a rich table, in the order given.
    """
    console = console or Console()

    if not entries:
        console.print("[yellow]No history recorded.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, caption=f"{len(entries)} record(s)")
    table.add_column("Changeset", justify="right", style="cyan", no_wrap=True)
    table.add_column("Time", style="magenta", no_wrap=True)
    table.add_column("User", style="blue")
    table.add_column("Operation")
    table.add_column("Record", justify="right", style="dim")
    table.add_column("Change", no_wrap=True)
    table.add_column("Captured")

    for entry in entries:
        changeset, record = entry.changeset, entry.record
        change = record.change_type.value
        table.add_row(
            str(changeset.id),
            changeset.time.isoformat(sep=" ", timespec="seconds"),
            escape(changeset.user_id),
            escape(changeset.operation),
            str(record.id),
            f"[{_CHANGE_STYLES.get(change, 'white')}]{change}[/]",
            escape(describe_representation(record.representation)),
        )

    console.print(table)


def print_rows(
    rows: Iterable[Optional[Dict[str, Any]]],
    title: str = "Reconstructed rows",
    console: Optional[Console] = None,
) -> None:
    """
    Render row images as a rich table with one column per row attribute.

    ``None`` entries (absent rows) are skipped; an all-absent input prints a
    notice instead.
    """
    console = console or Console()
    present: List[Dict[str, Any]] = [row for row in rows if row is not None]

    if not present:
        console.print("[yellow]No rows present at the requested time.[/yellow]")
        return

    columns: List[str] = []
    for row in present:
        for column in row:
            if column not in columns:
                columns.append(column)

    table = Table(title=title, box=box.ROUNDED)
    for column in columns:
        table.add_column(column, overflow="fold")
    for row in present:
        table.add_row(*(escape(_render_value(row[c])) if c in row else "" for c in columns))

    console.print(table)


__all__ = ["describe_representation", "print_history", "print_rows"]
