from __future__ import annotations

import threading

import pytest

from changeset_history.domain.models import ChangeType, DeltaImage, SnapshotChange, Strategy
from changeset_history.errors import InvalidChangesetReference, NoActiveUnitOfWork
from changeset_history.store.memory import InMemoryChangeStore

THREAD_COUNT = 8
WRITES_PER_THREAD = 25


def _snap(**image) -> SnapshotChange:
    return SnapshotChange(new_image=image)


def test_commit_publishes_changeset_and_records(wiring) -> None:
    store = wiring.store
    with store.unit_of_work() as uow:
        changeset = store.create_changeset(uow, "op", None, "u")
        store.append(uow, changeset.id, ChangeType.INSERT, "t", _snap(id=1))
        # Nothing is visible before commit.
        assert store.get_changeset(changeset.id) is None
        assert store.query("t", Strategy.SNAPSHOT) == []

    (entry,) = store.query("t", Strategy.SNAPSHOT)
    assert entry.changeset == changeset
    assert entry.record.representation == _snap(id=1)
    assert len(store) == 1


def test_rollback_discards_changeset_and_records(wiring) -> None:
    store = wiring.store
    with pytest.raises(RuntimeError, match="boom"):
        with store.unit_of_work() as uow:
            changeset = store.create_changeset(uow, "op", None, "u")
            store.append(uow, changeset.id, ChangeType.INSERT, "t", _snap(id=1))
            raise RuntimeError("boom")

    assert store.get_changeset(changeset.id) is None
    assert store.query("t", Strategy.SNAPSHOT) == []
    assert len(store) == 0


def test_append_to_unknown_changeset_is_rejected(wiring) -> None:
    with pytest.raises(InvalidChangesetReference) as excinfo:
        with wiring.store.unit_of_work() as uow:
            wiring.store.append(uow, 404, ChangeType.INSERT, "t", _snap(id=1))
    assert excinfo.value.changeset_id == 404


def test_append_to_committed_changeset_is_allowed(wiring) -> None:
    store = wiring.store
    with store.unit_of_work() as uow:
        changeset = store.create_changeset(uow, "op", None, "u")
    with store.unit_of_work() as uow:
        record = store.append(uow, changeset.id, ChangeType.INSERT, "t", _snap(id=1))
    assert record.changeset_id == changeset.id


def test_committed_changesets_cannot_be_relabelled(wiring) -> None:
    store = wiring.store
    with store.unit_of_work() as uow:
        changeset = store.create_changeset(uow, "op", None, "u")
    with pytest.raises(InvalidChangesetReference):
        with store.unit_of_work() as uow:
            store.update_changeset(uow, changeset.id, "other", None)


def test_finished_unit_of_work_cannot_write(wiring) -> None:
    with wiring.store.unit_of_work() as uow:
        pass
    with pytest.raises(NoActiveUnitOfWork):
        wiring.store.create_changeset(uow, "op", None, "u")


def test_query_orders_by_time_then_record_id(wiring) -> None:
    store, clock = wiring.store, wiring.clock
    clock.advance(minutes=10)
    with store.unit_of_work() as late:
        later = store.create_changeset(late, "later", None, "u")
        clock.advance(minutes=-5)
        with store.unit_of_work() as early:
            earlier = store.create_changeset(early, "earlier", None, "u")
            store.append(early, earlier.id, ChangeType.INSERT, "t", _snap(id=2))
            store.append(early, earlier.id, ChangeType.INSERT, "t", _snap(id=3))
        store.append(late, later.id, ChangeType.DELETE, "t", SnapshotChange(old_image={"id": 2}))

    entries = store.query("t", Strategy.SNAPSHOT)
    assert [e.changeset.operation for e in entries] == ["earlier", "earlier", "later"]
    assert entries[0].record.id < entries[1].record.id

    newest_first = store.query("t", Strategy.SNAPSHOT, descending=True)
    assert [e.record.id for e in newest_first] == [e.record.id for e in reversed(entries)]


def test_query_filters_table_strategy_key_and_time_window(wiring) -> None:
    store, clock = wiring.store, wiring.clock
    times = []
    for row_id in (1, 2, 3):
        with store.unit_of_work() as uow:
            changeset = store.create_changeset(uow, f"op{row_id}", None, "u")
            store.append(uow, changeset.id, ChangeType.INSERT, "t", _snap(id=row_id))
            store.append(uow, changeset.id, ChangeType.INSERT, "other", _snap(id=row_id))
            store.append(
                uow, changeset.id, ChangeType.INSERT, "t", DeltaImage(full_image={"id": row_id})
            )
        times.append(changeset.time)
        clock.advance(seconds=1)

    assert len(store.query("t", Strategy.SNAPSHOT)) == 3
    assert len(store.query("t", Strategy.DELTA)) == 3

    (only,) = store.query("t", Strategy.SNAPSHOT, pkey={"id": 2})
    assert only.record.representation.new_image == {"id": 2}

    window = store.query("t", Strategy.SNAPSHOT, after=times[0], until=times[1])
    assert [e.changeset.time for e in window] == [times[1]]

    inclusive = store.query("t", Strategy.SNAPSHOT, until=times[0])
    assert len(inclusive) == 1


def test_record_ids_strictly_increase_within_a_changeset_across_tables(wiring) -> None:
    store = wiring.store
    with store.unit_of_work() as uow:
        changeset = store.create_changeset(uow, "op", None, "u")
        ids = [
            store.append(uow, changeset.id, ChangeType.INSERT, table, _snap(id=n)).id
            for n, table in enumerate(["a", "b", "a", "c", "b"])
        ]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_concurrent_units_of_work_get_unique_ids() -> None:
    store = InMemoryChangeStore()
    errors = []

    def worker(n: int) -> None:
        try:
            for i in range(WRITES_PER_THREAD):
                with store.unit_of_work() as uow:
                    changeset = store.create_changeset(uow, f"w{n}", None, "u")
                    store.append(uow, changeset.id, ChangeType.INSERT, "t", _snap(id=(n, i)))
        except Exception as exc:  # pragma: no cover - surfaced by the assert below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(THREAD_COUNT)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    entries = store.query("t", Strategy.SNAPSHOT)
    assert len(entries) == THREAD_COUNT * WRITES_PER_THREAD
    assert len({e.record.id for e in entries}) == len(entries)
    assert len({e.changeset.id for e in entries}) == len(entries)
