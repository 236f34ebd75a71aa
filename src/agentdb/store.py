"""
AgentDB — the store facade.

Composes the HNSW index, the metadata store and the reasoning bank; assigns
vector ids, validates dimensions, emits lifecycle events and defines the
snapshot format.

    db = AgentDB(dimension=384)
    vid = db.add_vector(embedding, {"source": "chat"})
    hits = db.search(query_embedding, k=5)

Every public method holds one reentrant lock for its duration, so a store
may be shared between threads; event handlers run while the lock is held.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from agentdb.config import StoreConfig
from agentdb.errors import AgentDBError, DimensionMismatchError, SnapshotError
from agentdb.events import EventEmitter, Handler, StoreEvent
from agentdb.hnsw_index import HNSWIndex
from agentdb.metadata_store import MetadataStore, VectorRecord
from agentdb.reasoning_bank import ReasoningBank, ReasoningRecord

logger = logging.getLogger(__name__)

__all__ = ["AgentDB", "SNAPSHOT_VERSION"]

SNAPSHOT_VERSION = 1

Vector = Union[Sequence[float], np.ndarray]


class AgentDB:
    """In-process vector store and reasoning bank for agent memory.

    Args:
        config: Full configuration. Defaults to ``StoreConfig()``.
        embed_fn: Optional ``fn(text) -> vector`` used by :meth:`add_text`
            and :meth:`search_text`.
        handlers: Optional ``{event: handler}`` registered before the
            ``initialized`` event fires.
        **overrides: Individual :class:`StoreConfig` fields, e.g.
            ``AgentDB(dimension=4)``.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        *,
        embed_fn: Optional[Callable[[str], Vector]] = None,
        handlers: Optional[Dict[Union[str, StoreEvent], Handler]] = None,
        **overrides: Any,
    ) -> None:
        config = dataclasses.replace(config or StoreConfig(), **overrides)
        self.config = config.validate()
        self.embed_fn = embed_fn

        self._lock = threading.RLock()
        self._events = EventEmitter()
        self._index = self._new_index(self.config)
        self._metadata = MetadataStore()
        self._reasoning = ReasoningBank()
        self._current_id = 0

        for event, handler in (handlers or {}).items():
            self._events.on(event, handler)

        self._events.emit(
            StoreEvent.INITIALIZED,
            {"dimension": self.config.dimension, "max_elements": self.config.max_elements},
        )

    @staticmethod
    def _new_index(config: StoreConfig) -> HNSWIndex:
        return HNSWIndex(
            dimension=config.dimension,
            max_elements=config.max_elements,
            m=config.m,
            ef_construction=config.ef_construction,
            ef_search=config.ef_search,
            metric=config.metric,
            seed=config.seed,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self.config.dimension

    @property
    def current_id(self) -> int:
        """The id the next :meth:`add_vector` will assign."""
        return self._current_id

    @property
    def ef_search(self) -> int:
        return self._index.ef_search

    def set_ef_search(self, ef: int) -> None:
        """Change the query-time candidate list size. No rebuild needed."""
        with self._lock:
            self._index.ef_search = ef
            self.config.ef_search = self._index.ef_search

    def __len__(self) -> int:
        return len(self._metadata)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: Union[str, StoreEvent], handler: Handler) -> Handler:
        """Subscribe *handler* to *event*. Handlers receive the payload dict."""
        return self._events.on(event, handler)

    def off(self, event: Union[str, StoreEvent], handler: Handler) -> bool:
        return self._events.off(event, handler)

    # ------------------------------------------------------------------
    # Vectors
    # ------------------------------------------------------------------

    def add_vector(self, vector: Vector, metadata: Optional[Dict[str, Any]] = None) -> int:
        """Store *vector* with *metadata*. Returns the new integer id.

        Raises:
            DimensionMismatchError: ``len(vector) != dimension``. Nothing is
                modified, including the id counter.
        """
        vec = np.array(vector, dtype=np.float32).reshape(-1)
        if vec.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, vec.shape[0])

        with self._lock:
            vector_id = self._current_id
            self._index.insert(vector_id, vec)
            self._metadata.put(VectorRecord(vector_id, vec, dict(metadata or {})))
            self._current_id += 1
            logger.debug("Added vector %d", vector_id)
            self._events.emit(
                StoreEvent.VECTOR_ADDED,
                {"id": vector_id, "metadata": dict(metadata or {})},
            )
        return vector_id

    def search(self, query: Vector, k: int = 5) -> List[Dict[str, Any]]:
        """Approximate *k* nearest neighbors of *query*.

        Returns dicts with ``id``, ``distance``, ``vector``, ``metadata`` and
        ``created_at``, closest first.
        """
        with self._lock:
            hits = self._index.search(query, k)
            return [self._hydrate(self._metadata.get(vid), dist) for vid, dist in hits]

    def get_vector(self, vector_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._metadata.get(vector_id)
            return self._hydrate(record) if record is not None else None

    @staticmethod
    def _hydrate(record: Optional[VectorRecord], distance: Optional[float] = None) -> Dict[str, Any]:
        if record is None:
            raise AgentDBError("Index returned an id with no metadata record")
        result: Dict[str, Any] = {
            "id": record.id,
            "vector": record.vector,
            "metadata": dict(record.metadata),
            "created_at": record.created_at,
        }
        if distance is not None:
            result["distance"] = distance
        return result

    def delete_vector(self, vector_id: int) -> bool:
        """Remove *vector_id*. Returns ``False`` if it did not exist.

        The id is tombstoned in the index, so searches never return it again.
        """
        with self._lock:
            if vector_id not in self._metadata:
                return False
            self._index.mark_deleted(vector_id)
            self._metadata.delete(vector_id)
            logger.debug("Deleted vector %d", vector_id)
            self._events.emit(StoreEvent.VECTOR_DELETED, {"id": vector_id})
        return True

    def update_metadata(self, vector_id: int, metadata: Dict[str, Any]) -> bool:
        """Shallow-merge *metadata* into the record. ``False`` if unknown id."""
        with self._lock:
            if not self._metadata.update(vector_id, metadata):
                return False
            self._events.emit(
                StoreEvent.METADATA_UPDATED,
                {"id": vector_id, "metadata": dict(metadata)},
            )
        return True

    # ------------------------------------------------------------------
    # Text helpers
    # ------------------------------------------------------------------

    def _embed(self, text: str) -> Vector:
        if self.embed_fn is None:
            raise RuntimeError("No embed_fn configured; pass embed_fn=... to AgentDB")
        return self.embed_fn(text)

    def add_text(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> int:
        """Embed *text* and store it; the text is kept under ``metadata["text"]``."""
        return self.add_vector(self._embed(text), {"text": text, **(metadata or {})})

    def search_text(self, query: str, k: int = 5) -> List[Dict[str, Any]]:
        return self.search(self._embed(query), k)

    # ------------------------------------------------------------------
    # Reasoning bank
    # ------------------------------------------------------------------

    def add_reasoning(
        self,
        context: str,
        reasoning: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Store a context/reasoning pair. Returns its generated string id."""
        with self._lock:
            record = self._reasoning.add(context, reasoning, metadata)
            self._events.emit(StoreEvent.REASONING_ADDED, {"id": record.id, "context": context})
        return record.id

    def get_reasoning(self, reasoning_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._reasoning.get(reasoning_id)
            return self._reasoning_dict(record) if record is not None else None

    def search_reasoning(self, term: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Case-insensitive substring search over context and reasoning."""
        with self._lock:
            return [self._reasoning_dict(r) for r in self._reasoning.search(term, limit)]

    @staticmethod
    def _reasoning_dict(record: ReasoningRecord) -> Dict[str, Any]:
        return {"id": record.id, **record.to_dict()}

    # ------------------------------------------------------------------
    # Whole-store operations
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            index_stats = self._index.stats()
            return {
                "total_vectors": len(self._metadata),
                "total_reasoning": len(self._reasoning),
                "dimension": self.config.dimension,
                "max_elements": self.config.max_elements,
                "m": self.config.m,
                "ef_construction": self.config.ef_construction,
                "ef_search": self._index.ef_search,
                "metric": self.config.metric,
                "deleted_vectors": index_stats["deleted"],
                "index_levels": index_stats["levels"],
                "vector_bytes": self._metadata.vector_bytes(),
            }

    def clear(self) -> None:
        """Drop all vectors and reasoning and reset the id counter."""
        with self._lock:
            self._index = self._new_index(self.config)
            self._metadata.clear()
            self._reasoning.clear()
            self._current_id = 0
            logger.info("Store cleared")
            self._events.emit(StoreEvent.CLEARED, {})

    def compact(self) -> int:
        """Rebuild the index from live vectors, dropping tombstones.

        Returns the number of tombstones removed. Ids are unchanged.
        """
        with self._lock:
            removed = self._index.deleted_count
            index = self._new_index(self.config)
            index.ef_search = self._index.ef_search
            for record in self._metadata:
                index.insert(record.id, record.vector)
            self._index = index
            logger.info("Compacted index: %d vectors, %d tombstones removed", len(index), removed)
            self._events.emit(StoreEvent.COMPACTED, {"vectors": len(index), "removed": removed})
        return removed

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_snapshot(self) -> Dict[str, Any]:
        """JSON-serialisable copy of the whole store.

        The index graph is not included; :meth:`import_snapshot` rebuilds it by
        replaying inserts in the original order. Deleted vectors still in the
        index are exported with ``"deleted": True`` so the rebuilt graph has the
        same shape and answers queries identically.
        """
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "config": self.config.to_dict(),
                "vectors": [self._export_entry(vid) for vid in self._index.all_ids()],
                "reasoning_bank": [[rid, r.to_dict()] for rid, r in self._reasoning.items()],
                "current_id": self._current_id,
            }

    def _export_entry(self, vector_id: int) -> Dict[str, Any]:
        record = self._metadata.get(vector_id)
        if record is not None:
            return record.to_dict()
        return {
            "id": vector_id,
            "vector": self._index.vector_of(vector_id).tolist(),
            "deleted": True,
        }

    def import_snapshot(self, snapshot: Dict[str, Any]) -> None:
        """Replace the whole store with *snapshot*.

        The snapshot is validated and the new index built before anything is
        swapped in; on :class:`SnapshotError` the store is left untouched.
        """
        with self._lock:
            config, index, metadata, reasoning, current_id = self._build_from_snapshot(snapshot)
            self.config = config
            self._index = index
            self._metadata = metadata
            self._reasoning = reasoning
            self._current_id = current_id
            logger.info(
                "Imported snapshot: %d vectors, %d reasoning entries",
                len(metadata), len(reasoning),
            )
            self._events.emit(
                StoreEvent.IMPORTED,
                {"vectors": len(metadata), "reasoning": len(reasoning)},
            )

    def _build_from_snapshot(
        self, snapshot: Dict[str, Any]
    ) -> Tuple[StoreConfig, HNSWIndex, MetadataStore, ReasoningBank, int]:
        if not isinstance(snapshot, dict):
            raise SnapshotError("Snapshot must be a dict")
        raw_config = snapshot.get("config")
        if not isinstance(raw_config, dict) or "dimension" not in raw_config:
            raise SnapshotError("Snapshot is missing 'config.dimension'")
        if raw_config["dimension"] != self.config.dimension:
            raise SnapshotError(
                f"Snapshot dimension {raw_config['dimension']} does not match "
                f"store dimension {self.config.dimension}"
            )
        try:
            config = StoreConfig.from_dict({**self.config.to_dict(), **raw_config}).validate()
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid snapshot config: {e}") from e

        entries = snapshot.get("vectors")
        if not isinstance(entries, list):
            raise SnapshotError("Snapshot is missing 'vectors' list")

        index = self._new_index(config)
        metadata = MetadataStore()
        seen: Set[int] = set()
        for n, entry in enumerate(entries):
            try:
                vector_id = int(entry["id"])
                vec = np.array(entry["vector"], dtype=np.float32).reshape(-1)
                record = VectorRecord(
                    vector_id,
                    vec,
                    dict(entry.get("metadata") or {}),
                    float(entry.get("created_at", 0.0)),
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise SnapshotError(f"Malformed vector entry at position {n}: {e}") from e
            if vector_id in seen:
                raise SnapshotError(f"Duplicate vector id {vector_id} in snapshot")
            try:
                index.insert(vector_id, vec)
            except DimensionMismatchError as e:
                raise SnapshotError(f"Vector {vector_id}: {e}") from e
            seen.add(vector_id)
            if entry.get("deleted"):
                index.mark_deleted(vector_id)
            else:
                metadata.put(record)

        reasoning = ReasoningBank()
        items = snapshot.get("reasoning_bank") or []
        try:
            reasoning.restore((str(rid), data) for rid, data in items)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed reasoning bank: {e}") from e

        try:
            current_id = int(snapshot.get("current_id", 0))
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid current_id: {e}") from e
        if seen:
            current_id = max(current_id, max(seen) + 1)

        return config, index, metadata, reasoning, current_id

    def save(self, path: str) -> None:
        """Write :meth:`export_snapshot` to *path* as JSON."""
        path = os.path.abspath(path)
        snapshot = self.export_snapshot()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(snapshot, fh, indent=2)

    @classmethod
    def load(cls, path: str, **kwargs: Any) -> "AgentDB":
        """Create a store from a JSON snapshot written by :meth:`save`.

        Extra *kwargs* (``embed_fn``, ``handlers``) go to the constructor.
        """
        with open(path, "r", encoding="utf-8") as fh:
            snapshot = json.load(fh)
        raw_config = snapshot.get("config") if isinstance(snapshot, dict) else None
        if not isinstance(raw_config, dict):
            raise SnapshotError(f"{path} has no 'config' block")
        try:
            config = StoreConfig.from_dict(raw_config).validate()
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Invalid snapshot config: {e}") from e
        db = cls(config, **kwargs)
        db.import_snapshot(snapshot)
        return db
