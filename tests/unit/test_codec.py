from __future__ import annotations

from changeset_history.domain.codec import (
    delta_from_wire,
    delta_to_wire,
    snapshot_from_wire,
    snapshot_to_wire,
)
from changeset_history.domain.models import (
    ChangeType,
    DeltaImage,
    DeltaUpdate,
    FieldChange,
    SnapshotChange,
)


def test_delta_update_wire_format_mixes_keys_and_old_new_pairs() -> None:
    rep = DeltaUpdate(
        pkey_fields={"pk": 1},
        changed_fields={
            "foo": FieldChange(old=1, new=9),
            "bar": FieldChange(old="hello", new="world"),
        },
    )

    assert delta_to_wire(rep) == {
        "pk": 1,
        "foo": {"o": 1, "n": 9},
        "bar": {"o": "hello", "n": "world"},
    }


def test_delta_update_read_back_from_wire() -> None:
    change = {"id": 2, "text_col": {"o": "yyy", "n": "updated"}, "meta": {"o": None, "n": {"k": 1}}}

    rep = delta_from_wire(ChangeType.UPDATE, change)

    assert rep.pkey_fields == {"id": 2}
    assert rep.changed_fields["text_col"] == FieldChange(old="yyy", new="updated")
    assert rep.changed_fields["meta"].new == {"k": 1}


def test_delta_update_key_holding_an_object_is_not_mistaken_for_a_change() -> None:
    change = {"doc_key": {"o": 1}, "v": {"o": 1, "n": 2}}

    rep = delta_from_wire(ChangeType.UPDATE, change)

    assert rep.pkey_fields == {"doc_key": {"o": 1}}
    assert set(rep.changed_fields) == {"v"}


def test_delta_full_images_are_stored_as_is() -> None:
    image = {"id": 3, "text_col": "zzz"}

    assert delta_to_wire(DeltaImage(full_image=image)) == image
    for change_type in (ChangeType.INSERT, ChangeType.DELETE, ChangeType.BULK_CLEAR):
        assert delta_from_wire(change_type, image) == DeltaImage(full_image=image)


def test_snapshot_columns() -> None:
    rep = SnapshotChange(new_image={"id": 1, "a": "y"}, old_image={"id": 1, "a": "x"})

    record, old_record = snapshot_to_wire(rep)

    assert record == {"id": 1, "a": "y"}
    assert old_record == {"id": 1, "a": "x"}
    assert snapshot_from_wire(record, old_record) == rep
    assert snapshot_from_wire(None, {"id": 1}).new_image is None
