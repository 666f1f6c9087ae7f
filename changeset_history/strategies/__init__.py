"""
Strategies package for changeset capture.

This module re-exports the abstract interfaces and the concrete strategy classes
so downstream code can import from `changeset_history.strategies` directly.
"""

from changeset_history.strategies.abstract import AbstractCaptureStrategy, CaptureStrategy
from changeset_history.strategies.delta import DeltaStrategy
from changeset_history.strategies.snapshot import SnapshotStrategy

__all__ = [
    # Abstracts
    "AbstractCaptureStrategy",
    "CaptureStrategy",
    # Concrete strategies
    "DeltaStrategy",
    "SnapshotStrategy",
]
