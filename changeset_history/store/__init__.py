"""
Store package for changeset_history.

Exports the ChangeStore contract, the UnitOfWork handle, and the two store
implementations (in-memory and PostgreSQL).
"""

from changeset_history.store.base import ChangeStore, UnitOfWork
from changeset_history.store.memory import InMemoryChangeStore
from changeset_history.store.postgres import PostgresChangeStore

__all__ = [
    "ChangeStore",
    "InMemoryChangeStore",
    "PostgresChangeStore",
    "UnitOfWork",
]
