"""
Exceptions raised by agentdb.

Lookups of unknown ids are not errors: they return ``False`` or ``None``.
"""

from __future__ import annotations

__all__ = ["AgentDBError", "DimensionMismatchError", "SnapshotError"]


class AgentDBError(Exception):
    """Base class for all agentdb errors."""


class DimensionMismatchError(AgentDBError, ValueError):
    """Vector length does not equal the configured dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension {actual} does not match index dimension {expected}"
        )


class SnapshotError(AgentDBError, ValueError):
    """Snapshot passed to ``import_snapshot`` is malformed or incompatible."""
