from __future__ import annotations

import logging

import pytest

from changeset_history.domain.models import ChangeType, Strategy
from changeset_history.errors import NoActiveChangeset, UnrepresentableValue

ROW = {"id": 1, "a": "x", "b": 5, "stamp": "mon"}


@pytest.fixture
def tracked(wiring):
    wiring.tables.enable(
        "snap", strategy="snapshot", pkey_columns="id", ignore_on_update=["stamp"], ignore_always=["b"]
    )
    wiring.tables.enable(
        "delta", strategy="delta", pkey_columns="id", ignore_on_update=["stamp"], ignore_always=["b"]
    )
    return wiring


def test_insert_is_attributed_to_the_bound_changeset(tracked) -> None:
    with tracked.store.unit_of_work() as uow:
        changeset_id = tracked.registry.begin_change(uow, "insert", None, "u")
        (record,) = tracked.capture.on_insert(uow, "snap", ROW)

    assert record.changeset_id == changeset_id
    assert record.change_type is ChangeType.INSERT
    assert record.representation.new_image == {"id": 1, "a": "x", "stamp": "mon"}
    assert len(tracked.store.query("snap", Strategy.SNAPSHOT)) == 1


def test_capture_accepts_change_type_text(tracked) -> None:
    with tracked.store.unit_of_work() as uow:
        tracked.registry.begin_change(uow, "insert", None, "u")
        (record,) = tracked.capture.capture(uow, "delta", "INSERT", new=ROW)
    assert record.representation.full_image == {"id": 1, "a": "x", "stamp": "mon"}


def test_capture_without_changeset_raises_and_writes_nothing(tracked) -> None:
    with pytest.raises(NoActiveChangeset):
        with tracked.store.unit_of_work() as uow:
            tracked.capture.on_insert(uow, "snap", ROW)
    assert len(tracked.store) == 0


def test_ignored_only_update_of_snapshot_table_needs_no_changeset(tracked) -> None:
    changed = {**ROW, "b": 6, "stamp": "tue"}
    with tracked.store.unit_of_work() as uow:
        assert tracked.capture.on_update(uow, "snap", ROW, changed) == []


def test_ignored_only_update_of_delta_table_still_needs_a_changeset(tracked) -> None:
    changed = {**ROW, "b": 6, "stamp": "tue"}
    with pytest.raises(NoActiveChangeset):
        with tracked.store.unit_of_work() as uow:
            tracked.capture.on_update(uow, "delta", ROW, changed)
    assert len(tracked.store) == 0


def test_ignored_only_update_with_changeset_records_nothing(tracked) -> None:
    changed = {**ROW, "b": 6, "stamp": "tue"}
    with tracked.store.unit_of_work() as uow:
        tracked.registry.begin_change(uow, "touch", None, "u")
        assert tracked.capture.on_update(uow, "delta", ROW, changed) == []
        assert tracked.capture.on_update(uow, "snap", ROW, changed) == []
    assert tracked.store.query("delta", Strategy.DELTA) == []


@pytest.mark.parametrize("table", ["snap", "delta"])
def test_bulk_clear_of_empty_table_needs_a_changeset(tracked, table) -> None:
    with pytest.raises(NoActiveChangeset):
        with tracked.store.unit_of_work() as uow:
            tracked.capture.on_bulk_clear(uow, table, [])


def test_bulk_clear_of_untracked_table_needs_no_changeset(tracked) -> None:
    with tracked.store.unit_of_work() as uow:
        assert tracked.capture.on_bulk_clear(uow, "elsewhere", [ROW]) == []


def test_untracked_table_is_ignored(tracked, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="changeset_history.capture")
    with tracked.store.unit_of_work() as uow:
        assert tracked.capture.on_insert(uow, "elsewhere", ROW) == []
    assert "untracked" in caplog.text
    assert len(tracked.store) == 0


def test_disabled_table_stops_capturing(tracked) -> None:
    tracked.tables.disable("snap")
    with tracked.store.unit_of_work() as uow:
        tracked.registry.begin_change(uow, "op", None, "u")
        assert tracked.capture.on_delete(uow, "snap", ROW) == []


def test_bulk_clear_records_each_surviving_row_in_one_changeset(tracked) -> None:
    rows = [ROW, {**ROW, "id": 2, "a": "y"}]
    with tracked.store.unit_of_work() as uow:
        changeset_id = tracked.registry.begin_change(uow, "clear", None, "u")
        records = tracked.capture.on_bulk_clear(uow, "delta", rows)

    assert len(records) == 2
    assert {r.changeset_id for r in records} == {changeset_id}
    assert all(r.change_type is ChangeType.BULK_CLEAR for r in records)
    assert [r.representation.full_image["id"] for r in records] == [1, 2]


def test_records_of_one_changeset_have_increasing_ids_across_tables(tracked) -> None:
    with tracked.store.unit_of_work() as uow:
        tracked.registry.begin_change(uow, "mixed", None, "u")
        ids = []
        for n in range(3):
            ids += [r.id for r in tracked.capture.on_insert(uow, "snap", {**ROW, "id": n})]
            ids += [r.id for r in tracked.capture.on_insert(uow, "delta", {**ROW, "id": n})]
    assert ids == sorted(ids)
    assert len(ids) == 6


def test_unrepresentable_value_aborts_the_unit_of_work(tracked) -> None:
    with pytest.raises(UnrepresentableValue) as excinfo:
        with tracked.store.unit_of_work() as uow:
            tracked.registry.begin_change(uow, "op", None, "u")
            tracked.capture.on_insert(uow, "snap", {"id": 9, "a": b"\xff"})
    assert excinfo.value.table_name == "snap"
    assert tracked.store.query("snap", Strategy.SNAPSHOT) == []


def test_event_images_are_checked(tracked) -> None:
    with tracked.store.unit_of_work() as uow:
        tracked.registry.begin_change(uow, "op", None, "u")
        with pytest.raises(ValueError, match="old row image"):
            tracked.capture.capture(uow, "snap", ChangeType.DELETE, new=ROW)
