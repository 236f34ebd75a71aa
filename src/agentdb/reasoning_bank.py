"""
Reasoning bank — keyed store of free-text context/reasoning pairs.

Search is a linear case-insensitive substring scan over both text fields.
"""

from __future__ import annotations

import itertools
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

__all__ = ["ReasoningRecord", "ReasoningBank"]


@dataclass
class ReasoningRecord:
    id: str
    context: str
    reasoning: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def matches(self, term_lower: str) -> bool:
        return term_lower in self.context.lower() or term_lower in self.reasoning.lower()

    def to_dict(self) -> Dict[str, Any]:
        """Serialisable form, without ``id`` (the snapshot keys records by id)."""
        return {
            "context": self.context,
            "reasoning": self.reasoning,
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, record_id: str, data: Dict[str, Any]) -> "ReasoningRecord":
        return cls(
            id=record_id,
            context=data["context"],
            reasoning=data["reasoning"],
            metadata=dict(data.get("metadata") or {}),
            created_at=float(data.get("created_at", time.time())),
        )


class ReasoningBank:
    """Insertion-ordered store of :class:`ReasoningRecord` objects."""

    ID_PREFIX = "reasoning"

    def __init__(self) -> None:
        self._records: Dict[str, ReasoningRecord] = {}
        self._counter = itertools.count()

    def _new_id(self) -> str:
        while True:
            rid = f"{self.ID_PREFIX}_{next(self._counter)}_{secrets.token_hex(4)}"
            if rid not in self._records:
                return rid

    def add(
        self,
        context: str,
        reasoning: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ReasoningRecord:
        record = ReasoningRecord(
            id=self._new_id(),
            context=context,
            reasoning=reasoning,
            metadata=dict(metadata or {}),
        )
        self._records[record.id] = record
        return record

    def get(self, record_id: str) -> Optional[ReasoningRecord]:
        return self._records.get(record_id)

    def search(self, term: str, limit: Optional[int] = None) -> List[ReasoningRecord]:
        """Records whose context or reasoning contains *term*, case-insensitively."""
        term_lower = term.lower()
        matches: List[ReasoningRecord] = []
        for record in self._records.values():
            if record.matches(term_lower):
                matches.append(record)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    def restore(self, items: Iterable[Tuple[str, Dict[str, Any]]]) -> None:
        """Bulk-load ``(id, record_dict)`` pairs, keeping their ids."""
        for record_id, data in items:
            self._records[record_id] = ReasoningRecord.from_dict(record_id, data)

    def items(self) -> List[Tuple[str, ReasoningRecord]]:
        return list(self._records.items())

    def clear(self) -> None:
        self._records.clear()
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records
