"""
Change encoder: maps a mutation event and its table's column policy to the
representations that should be stored.

Usage:
    from changeset_history.encoder import encode

    reps = encode(MutationEvent(table_name="t", change_type=ChangeType.INSERT, new=row), config)

The encoder is pure. Persisting the result is the capture hook's job.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Union

from changeset_history.domain.models import MutationEvent, Representation, Strategy, TableConfig
from changeset_history.strategies.abstract import CaptureStrategy
from changeset_history.strategies.delta import DeltaStrategy
from changeset_history.strategies.snapshot import SnapshotStrategy


def _strategy_factories() -> Dict[str, Callable[[], CaptureStrategy]]:
    """Registry of available strategies."""
    return {
        Strategy.SNAPSHOT.value: lambda: SnapshotStrategy(),
        Strategy.DELTA.value: lambda: DeltaStrategy(),
    }


_INSTANCES: Dict[str, CaptureStrategy] = {}


def available_strategies() -> List[str]:
    """List available strategy names."""
    return sorted(_strategy_factories().keys())


def resolve_strategy(name: Union[Strategy, str]) -> CaptureStrategy:
    """
    Return the (stateless, shared) strategy instance for ``name``.

    Raises
    ------
    ValueError
        If the name is not a registered strategy.
    """
    key = name.value if isinstance(name, Strategy) else name
    factories = _strategy_factories()
    if key not in factories:
        raise ValueError(f"Unknown strategy '{key}'. Available: {', '.join(factories)}")
    if key not in _INSTANCES:
        _INSTANCES[key] = factories[key]()
    return _INSTANCES[key]


def encode(event: MutationEvent, config: TableConfig) -> List[Representation]:
    """
    Compute zero or one representation for a mutation under the table's strategy.

    Parameters
    ----------
    event : MutationEvent
        The mutation reported by the host.
    config : TableConfig
        Registration of the mutated table.

    Returns
    -------
    List[Representation]
        Empty when an update only touched ignored columns.

    Raises
    ------
    UnrepresentableValue
        If a logged column holds a value outside the structured-value model.
    """
    return resolve_strategy(config.strategy).encode(event, config)


__all__ = [
    "available_strategies",
    "encode",
    "resolve_strategy",
]
