"""Optimization Hooks Protocol Interface.

This module defines the corrective actions the performance monitor may ask
the engine to carry out when a threshold is exceeded.
"""

from typing import Protocol


class OptimizationHooks(Protocol):
    """Corrective actions exposed to the performance monitor."""

    def shrink_cache(self) -> None:
        """Reduce the condition cache capacity."""
        ...

    def reduce_batch_size(self) -> None:
        """Deliver fewer queued notifications per tick."""
        ...

    def defer_non_critical(self) -> None:
        """Move notifications to deferred delivery."""
        ...

    def cleanup_memory(self) -> None:
        """Drop stale cached data and collect garbage."""
        ...
