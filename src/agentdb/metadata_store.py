"""
Metadata store — id → vector, metadata, creation time.

The single owner of vector payloads. The HNSW index keeps a reference to the
same read-only array rather than a copy.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import numpy as np

__all__ = ["VectorRecord", "MetadataStore"]


@dataclass
class VectorRecord:
    """One stored vector. ``vector`` is immutable after insertion."""

    id: int
    vector: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        self.vector.setflags(write=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vector": self.vector.tolist(),
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }


class MetadataStore:
    """Insertion-ordered mapping of vector id to :class:`VectorRecord`."""

    def __init__(self) -> None:
        self._records: Dict[int, VectorRecord] = {}

    def put(self, record: VectorRecord) -> None:
        self._records[record.id] = record

    def get(self, vector_id: int) -> Optional[VectorRecord]:
        return self._records.get(vector_id)

    def delete(self, vector_id: int) -> bool:
        return self._records.pop(vector_id, None) is not None

    def update(self, vector_id: int, partial: Dict[str, Any]) -> bool:
        """Shallow-merge *partial* over the record's metadata.

        Keys in *partial* overwrite, all others are preserved. Returns
        ``False`` if *vector_id* is unknown.
        """
        record = self._records.get(vector_id)
        if record is None:
            return False
        record.metadata = {**record.metadata, **partial}
        return True

    def ids(self) -> List[int]:
        return list(self._records)

    def vector_bytes(self) -> int:
        """Bytes held by stored vector payloads."""
        return sum(r.vector.nbytes for r in self._records.values())

    def clear(self) -> None:
        self._records.clear()

    def __iter__(self) -> Iterator[VectorRecord]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, vector_id: object) -> bool:
        return vector_id in self._records
