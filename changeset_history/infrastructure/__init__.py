"""
Infrastructure package for changeset_history.

Centralizes database connectivity concerns (connection factory, pooling) and
the DDL of the history tables. Keep this layer focused on I/O and resource
management, decoupled from capture and replay logic.
"""

from changeset_history.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)
from changeset_history.infrastructure.schema import install_schema, uninstall_schema

__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
    "install_schema",
    "uninstall_schema",
]
