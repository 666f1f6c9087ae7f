from __future__ import annotations

from collections import Counter

import pytest

from changeset_history.domain.models import ChangeType, Strategy
from scripts.sample_exercises import TABLE, run_exercises

# Records expected per exercise, in changeset order.
EXPECTED_RECORDS = [3, 0, 0, 1, 1, 1, 1, 1, 2]


@pytest.mark.parametrize("strategy", [Strategy.SNAPSHOT, Strategy.DELTA])
def test_each_exercise_logs_the_expected_number_of_records(strategy: Strategy) -> None:
    store, reconstructor, _, changeset_ids = run_exercises(strategy)

    per_changeset = Counter(e.changeset.id for e in reconstructor.history(TABLE))

    assert [per_changeset[cid] for cid in changeset_ids] == EXPECTED_RECORDS
    # Changesets without records still exist.
    assert store.get_changeset(changeset_ids[1]).operation.startswith("Change-002")


def test_delta_update_with_ignored_columns_logs_only_the_real_change() -> None:
    _, reconstructor, _, changeset_ids = run_exercises(Strategy.DELTA)

    (entry,) = [e for e in reconstructor.history(TABLE) if e.changeset.id == changeset_ids[7]]

    rep = entry.record.representation
    assert entry.record.change_type is ChangeType.UPDATE
    assert rep.pkey_fields == {"id": 3}
    assert {k: (v.old, v.new) for k, v in rep.changed_fields.items()} == {"int_col": (1000, 12)}


def test_snapshot_images_never_hold_always_ignored_columns() -> None:
    _, reconstructor, _, _ = run_exercises(Strategy.SNAPSHOT)

    for entry in reconstructor.history(TABLE):
        for image in entry.record.images():
            assert "col_to_always_ignore" not in image
            assert "another_col_to_always_ignore" not in image


@pytest.mark.parametrize("strategy", [Strategy.SNAPSHOT, Strategy.DELTA])
def test_table_replay_after_each_exercise(strategy: Strategy) -> None:
    store, reconstructor, table, changeset_ids = run_exercises(strategy)
    assert table.rows() == []

    def state_after(index: int):
        at = store.get_changeset(changeset_ids[index]).time
        rows = reconstructor.reconstruct_table(TABLE, table.rows(), at)
        return {row["id"]: row for row in rows}

    assert set(state_after(0)) == {1, 2, 3}
    assert set(state_after(3)) == {2, 3}
    assert state_after(4)[2]["text_col"] == "updated"
    assert state_after(6)[3]["jsonb_col"] == {"c": 789, "medal": "platinum"}
    assert state_after(7)[3]["int_col"] == 12
    assert state_after(8) == {}
