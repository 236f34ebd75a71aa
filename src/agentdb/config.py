"""
Store configuration.

All index parameters except ``ef_search`` are fixed once the index is built;
changing them requires a rebuild (``AgentDB.import_snapshot`` or a new store).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

from agentdb.distance import DistanceMetric

__all__ = ["StoreConfig"]


@dataclass
class StoreConfig:
    """Construction options for :class:`agentdb.AgentDB`.

    Args:
        dimension: Length of every stored vector.
        max_elements: Capacity hint. Inserting beyond it is allowed.
        m: Max neighbors per node per graph layer.
        ef_construction: Candidate list size while linking a new node.
        ef_search: Candidate list size at query time (mutable later).
        metric: ``"cosine"``, ``"l2"`` or ``"ip"``.
        seed: Seed for layer assignment, so rebuilds are reproducible.
    """

    dimension: int = 384
    max_elements: int = 10000
    m: int = 16
    ef_construction: int = 200
    ef_search: int = 50
    metric: str = DistanceMetric.COSINE.value
    seed: int = 100

    def validate(self) -> "StoreConfig":
        if not isinstance(self.dimension, int) or self.dimension <= 0:
            raise ValueError(f"dimension must be a positive integer, got {self.dimension!r}")
        if self.max_elements < 0:
            raise ValueError(f"max_elements must be >= 0, got {self.max_elements!r}")
        if self.m < 2:
            raise ValueError(f"m must be >= 2, got {self.m!r}")
        if self.ef_construction < 1:
            raise ValueError(f"ef_construction must be >= 1, got {self.ef_construction!r}")
        if self.ef_search < 1:
            raise ValueError(f"ef_search must be >= 1, got {self.ef_search!r}")
        if isinstance(self.metric, DistanceMetric):
            self.metric = self.metric.value
        self.metric = DistanceMetric(str(self.metric).lower()).value
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreConfig":
        """Build a config from *data*, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
