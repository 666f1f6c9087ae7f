from __future__ import annotations

import json
import logging

from changeset_history.utils.logging import JsonFormatter, _json_formatter, configure_logging

EXPECTED_CHANGESET_ID = 42
EXPECTED_RECORD_ID = 7


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.changeset_id = EXPECTED_CHANGESET_ID
    record.table = "sample_logged_table"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["changeset_id"] == EXPECTED_CHANGESET_ID
    assert payload["table"] == "sample_logged_table"
    assert "pathname" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"record_id": EXPECTED_RECORD_ID}

    payload = json.loads(_json_formatter(record))

    assert payload["record_id"] == EXPECTED_RECORD_ID


def test_json_formatter_stringifies_non_json_values() -> None:
    record = _record()
    record.strategy = object()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["strategy"].startswith("<object")


def test_configure_logging_installs_json_handler() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="DEBUG", json_logs=True)
        assert root.level == logging.DEBUG
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
