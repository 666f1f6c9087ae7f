from __future__ import annotations

import pytest
from psycopg import sql

from changeset_history import __version__, available_strategies
from changeset_history.config import Settings
from changeset_history.infrastructure import db_factory
from changeset_history.infrastructure.schema import install_statements, uninstall_statements

DEFAULT_TIMEOUT_MS = 30_000

_ENV_KEYS = [
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
    "DB_STATEMENT_TIMEOUT_MS",
    "HISTORY_SCHEMA",
    "LOG_LEVEL",
    "LOG_JSON",
]


class _RecordingCursor:
    def __init__(self) -> None:
        self.statements = []

    def execute(self, statement, params=None) -> None:
        self.statements.append(statement)


def test_settings_defaults(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    settings = Settings(_env_file=None)
    assert settings.db_host == "localhost"
    assert settings.db_port == 5432
    assert settings.db_user == "postgres"
    assert settings.db_name == "changeset_history"
    assert settings.db_statement_timeout_ms == DEFAULT_TIMEOUT_MS
    assert settings.history_schema == "public"
    assert settings.log_json is False


def test_settings_read_environment_aliases(monkeypatch) -> None:
    monkeypatch.setenv("HISTORY_SCHEMA", "audit")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("LOG_JSON", "true")
    settings = Settings(_env_file=None)
    assert settings.history_schema == "audit"
    assert settings.db_port == 6543
    assert settings.log_json is True


def test_build_dsn_uses_settings(monkeypatch) -> None:
    monkeypatch.setattr(
        db_factory,
        "get_settings",
        lambda: Settings(
            _env_file=None, db_host="db", db_port=1, db_user="u", db_password="p", db_name="n"
        ),
    )
    assert db_factory.build_dsn() == "postgresql://u:p@db:1/n"


def test_statement_timeout_is_transaction_local() -> None:
    cur = _RecordingCursor()
    db_factory.apply_statement_timeout(cur, 1500)
    (statement,) = cur.statements
    assert isinstance(statement, sql.Composed)

    disabled = _RecordingCursor()
    db_factory.apply_statement_timeout(disabled, 0)
    assert disabled.statements == []


def test_schema_statements_cover_all_history_tables() -> None:
    created = install_statements("audit")
    dropped = uninstall_statements("audit")
    assert len(created) == 5
    assert len(dropped) == 3
    assert all(isinstance(stmt, sql.Composed) for stmt in created + dropped)


def test_package_exports() -> None:
    assert __version__
    assert available_strategies() == ["delta", "snapshot"]


@pytest.mark.parametrize("value", ["0", "false"])
def test_log_json_false_values(monkeypatch, value) -> None:
    monkeypatch.setenv("LOG_JSON", value)
    assert Settings(_env_file=None).log_json is False
