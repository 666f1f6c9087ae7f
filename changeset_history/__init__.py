"""
changeset-history - git-log-like change capture for tracked tables.

Mutations of tracked tables are grouped into attributable changesets
(who, when, what) and recorded under one of two strategies:

- Snapshot: complete before/after row images per change
- Delta: only the changed fields plus the primary key

Recorded history answers "what did this row or table look like at time T".
Stores are provided for process memory and for PostgreSQL.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from changeset_history.capture import ChangeCapture
from changeset_history.config import Settings, get_settings
from changeset_history.domain.models import (
    ChangeRecord,
    Changeset,
    ChangeType,
    HistoryEntry,
    Strategy,
    TableConfig,
)
from changeset_history.encoder import available_strategies, encode
from changeset_history.errors import (
    ChangesetHistoryError,
    InvalidChangesetReference,
    NoActiveChangeset,
    NoActiveUnitOfWork,
    TableConfigError,
    TableNotTracked,
    UnrepresentableValue,
)
from changeset_history.reconstructor import Reconstructor
from changeset_history.registry import ChangesetRegistry
from changeset_history.store import ChangeStore, InMemoryChangeStore, PostgresChangeStore, UnitOfWork
from changeset_history.tables import TableRegistry
from changeset_history.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Data model
    "ChangeRecord",
    "Changeset",
    "ChangeType",
    "HistoryEntry",
    "Strategy",
    "TableConfig",
    # Capture and replay
    "ChangeCapture",
    "ChangesetRegistry",
    "Reconstructor",
    "TableRegistry",
    "available_strategies",
    "encode",
    # Stores
    "ChangeStore",
    "InMemoryChangeStore",
    "PostgresChangeStore",
    "UnitOfWork",
    # Errors
    "ChangesetHistoryError",
    "InvalidChangesetReference",
    "NoActiveChangeset",
    "NoActiveUnitOfWork",
    "TableConfigError",
    "TableNotTracked",
    "UnrepresentableValue",
    # Logging
    "configure_logging",
    "get_logger",
]
