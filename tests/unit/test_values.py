from __future__ import annotations

import math
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

import pytest

from changeset_history.domain.values import (
    images_equal,
    strip_columns,
    to_structured,
    values_equal,
)
from changeset_history.errors import UnrepresentableValue


class _Medal(Enum):
    GOLD = "gold"


def test_to_structured_passes_json_values_through() -> None:
    value = {"a": [1, 2.5, "x", None, True], "b": {"c": False}}
    assert to_structured("col", value) == value


def test_to_structured_converts_host_types_like_to_jsonb() -> None:
    stamp = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)
    ident = uuid.UUID("12345678-1234-5678-1234-567812345678")

    assert to_structured("t", stamp) == "2024-05-01T10:30:00+00:00"
    assert to_structured("d", date(2024, 5, 1)) == "2024-05-01"
    assert to_structured("u", ident) == str(ident)
    assert to_structured("e", _Medal.GOLD) == "gold"
    assert to_structured("tup", (1, 2)) == [1, 2]


def test_to_structured_decimal_only_when_exact() -> None:
    assert to_structured("n", Decimal("42")) == 42
    assert isinstance(to_structured("n", Decimal("42.00")), int)
    assert to_structured("n", Decimal("1.5")) == 1.5

    with pytest.raises(UnrepresentableValue, match="precision"):
        to_structured("n", Decimal("0.1000000000000000000001"))


@pytest.mark.parametrize(
    "value",
    [b"raw", bytearray(b"raw"), {1, 2}, math.nan, math.inf, Decimal("NaN"), object()],
)
def test_to_structured_rejects_values_outside_the_model(value) -> None:
    with pytest.raises(UnrepresentableValue) as excinfo:
        to_structured("blob", value)
    assert excinfo.value.column == "blob"


def test_to_structured_rejects_non_string_keys() -> None:
    with pytest.raises(UnrepresentableValue, match="non-string key"):
        to_structured("doc", {1: "x"})


def test_strip_columns_drops_excluded_before_converting() -> None:
    row = {"id": 1, "name": "x", "blob": b"\x00", "noise": 3}
    assert strip_columns(row, {"blob"}, ["noise"]) == {"id": 1, "name": "x"}


def test_values_equal_is_structural_and_null_safe() -> None:
    assert values_equal(None, None)
    assert not values_equal(None, 0)
    assert values_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})
    assert not values_equal([1, 2], [2, 1])
    assert not values_equal({"a": 1}, {"a": 1, "b": None})


def test_values_equal_keeps_booleans_apart_from_numbers() -> None:
    assert values_equal(1, 1.0)
    assert not values_equal(True, 1)
    assert not values_equal(0, False)
    assert values_equal(True, True)
    assert not values_equal("1", 1)


def test_images_equal_handles_absent_images() -> None:
    assert images_equal(None, None)
    assert not images_equal(None, {})
    assert images_equal({"id": 1}, {"id": 1.0})
