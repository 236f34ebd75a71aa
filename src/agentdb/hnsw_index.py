"""
HNSW index — approximate k-nearest-neighbor search over fixed-length vectors.

Each graph layer is a NetworkX ``DiGraph``. An edge ``a -> b`` on layer ``l``
means ``b`` is in ``a``'s neighbor list on that layer; the edge carries the
``distance`` between the two vectors so pruning never recomputes it.

Deletion is a soft delete: tombstoned ids keep their edges (so the graph stays
navigable) but are never returned by :meth:`HNSWIndex.search`.
"""

from __future__ import annotations

import heapq
import logging
import math
import random
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

import networkx as nx
import numpy as np

from agentdb.distance import DistanceMetric, as_vector, get_distance_fn, vector_norm
from agentdb.errors import DimensionMismatchError

logger = logging.getLogger(__name__)

__all__ = ["HNSWIndex"]

# (distance, id) pairs sort by distance, then by id for deterministic ties.
Candidate = Tuple[float, int]


class HNSWIndex:
    """Hierarchical Navigable Small World graph.

    The index never copies vectors: :meth:`insert` keeps a reference to the
    array it is given, which the caller must not mutate afterwards.

    Args:
        dimension: Length of every vector.
        max_elements: Capacity hint only; inserting more is allowed.
        m: Max neighbors per node per layer.
        ef_construction: Candidate list size while linking a new node.
        ef_search: Candidate list size at query time.
        metric: ``"cosine"`` (default), ``"l2"`` or ``"ip"``.
        seed: Seed for layer assignment.
    """

    def __init__(
        self,
        dimension: int,
        max_elements: int = 10000,
        m: int = 16,
        ef_construction: int = 200,
        ef_search: int = 50,
        metric: Union[str, DistanceMetric] = DistanceMetric.COSINE,
        seed: int = 100,
    ) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        if m < 2:
            raise ValueError(f"m must be >= 2, got {m}")
        if ef_construction < 1:
            raise ValueError(f"ef_construction must be >= 1, got {ef_construction}")

        self.dimension = dimension
        self.max_elements = max_elements
        self.m = m
        self.ef_construction = ef_construction
        self.metric = DistanceMetric(metric)
        self.seed = seed
        self.ef_search = ef_search

        self._distance = get_distance_fn(self.metric)
        self._level_mult = 1.0 / math.log(m)

        self._layers: List[nx.DiGraph] = []
        self._vectors: Dict[int, np.ndarray] = {}
        self._norms: Dict[int, float] = {}
        self._levels: Dict[int, int] = {}
        self._deleted: Set[int] = set()
        self._entry_point: Optional[int] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def ef_search(self) -> int:
        return self._ef_search

    @ef_search.setter
    def ef_search(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"ef_search must be >= 1, got {value}")
        self._ef_search = int(value)

    @property
    def entry_point(self) -> Optional[int]:
        return self._entry_point

    @property
    def max_level(self) -> int:
        """Top layer index, ``-1`` when empty."""
        return len(self._layers) - 1

    @property
    def deleted_count(self) -> int:
        return len(self._deleted)

    def __len__(self) -> int:
        return len(self._vectors) - len(self._deleted)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._vectors and node_id not in self._deleted

    def is_deleted(self, node_id: int) -> bool:
        return node_id in self._deleted

    def ids(self) -> List[int]:
        """Live ids in insertion order."""
        return [i for i in self._vectors if i not in self._deleted]

    def all_ids(self) -> List[int]:
        """Every inserted id, tombstones included, in insertion order."""
        return list(self._vectors)

    def vector_of(self, node_id: int) -> np.ndarray:
        return self._vectors[node_id]

    def level_of(self, node_id: int) -> int:
        return self._levels[node_id]

    def neighbors(self, node_id: int, layer: int = 0) -> List[int]:
        """Neighbor list of *node_id* on *layer*, closest first."""
        graph = self._layers[layer]
        if node_id not in graph:
            return []
        return [nb for nb, _ in self._sorted_edges(graph, node_id)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_dimension(self, vector: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        vec = as_vector(vector)
        if vec.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, vec.shape[0])
        return vec

    def _random_level(self, node_id: int) -> int:
        # A pure function of (seed, id): replaying the same inserts rebuilds the same graph.
        rng = random.Random(f"{self.seed}:{node_id}")
        return int(-math.log(1.0 - rng.random()) * self._level_mult)

    def _distance_to(self, query: np.ndarray, query_norm: float, node_id: int) -> float:
        return self._distance(query, self._vectors[node_id], query_norm, self._norms[node_id])

    @staticmethod
    def _sorted_edges(graph: nx.DiGraph, node_id: int) -> List[Tuple[int, float]]:
        return sorted(
            ((nb, attrs["distance"]) for nb, attrs in graph[node_id].items()),
            key=lambda item: (item[1], item[0]),
        )

    def _search_layer(
        self,
        query: np.ndarray,
        query_norm: float,
        entry_points: List[Candidate],
        ef: int,
        layer: int,
        skip_deleted: bool = False,
    ) -> List[Candidate]:
        """Best-first search on one layer. Returns up to *ef* candidates, closest first.

        With *skip_deleted*, tombstoned nodes are still traversed but never
        enter the result set.
        """
        graph = self._layers[layer]
        visited: Set[int] = {node for _, node in entry_points}
        candidates: List[Candidate] = list(entry_points)
        heapq.heapify(candidates)
        # Max-heap on (distance, id) via negation
        results: List[Tuple[float, int]] = []
        for dist, node in entry_points:
            if skip_deleted and node in self._deleted:
                continue
            heapq.heappush(results, (-dist, -node))
            if len(results) > ef:
                heapq.heappop(results)

        while candidates:
            dist, node = heapq.heappop(candidates)
            if len(results) >= ef and (dist, node) > (-results[0][0], -results[0][1]):
                break
            for nb in graph.successors(node):
                if nb in visited:
                    continue
                visited.add(nb)
                nb_dist = self._distance_to(query, query_norm, nb)
                if len(results) < ef or (nb_dist, nb) < (-results[0][0], -results[0][1]):
                    heapq.heappush(candidates, (nb_dist, nb))
                    if skip_deleted and nb in self._deleted:
                        continue
                    heapq.heappush(results, (-nb_dist, -nb))
                    if len(results) > ef:
                        heapq.heappop(results)

        return sorted((-d, -n) for d, n in results)

    def _prune(self, node_id: int, layer: int) -> None:
        """Drop the farthest out-edges of *node_id* beyond ``m``."""
        graph = self._layers[layer]
        if graph.out_degree(node_id) <= self.m:
            return
        for nb, _ in self._sorted_edges(graph, node_id)[self.m:]:
            graph.remove_edge(node_id, nb)

    def _descend(self, query: np.ndarray, query_norm: float, stop_layer: int) -> List[Candidate]:
        """Greedy search from the entry point down to (not into) *stop_layer*."""
        ep = self._entry_point
        if ep is None:
            return []
        eps = [(self._distance_to(query, query_norm, ep), ep)]
        for layer in range(self.max_level, stop_layer, -1):
            eps = self._search_layer(query, query_norm, eps, 1, layer)
        return eps

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def insert(self, node_id: int, vector: Union[Sequence[float], np.ndarray]) -> None:
        """Add *vector* under *node_id*.

        Raises:
            DimensionMismatchError: ``len(vector) != dimension``.
            ValueError: *node_id* is already in the index (live or deleted).
        """
        vec = self._check_dimension(vector)
        if node_id in self._vectors:
            raise ValueError(f"id {node_id} is already in the index")
        if len(self._vectors) == self.max_elements:
            logger.debug("Index grew past capacity hint of %d elements", self.max_elements)

        level = self._random_level(node_id)
        norm = vector_norm(vec)
        self._vectors[node_id] = vec
        self._norms[node_id] = norm
        self._levels[node_id] = level

        if self._entry_point is None:
            while len(self._layers) <= level:
                self._layers.append(nx.DiGraph())
            for layer in range(level + 1):
                self._layers[layer].add_node(node_id)
            self._entry_point = node_id
            return

        top = self.max_level
        eps = self._descend(vec, norm, level)

        for layer in range(min(level, top), -1, -1):
            graph = self._layers[layer]
            found = self._search_layer(vec, norm, eps, self.ef_construction, layer)
            graph.add_node(node_id)
            for dist, nb in found[: self.m]:
                graph.add_edge(node_id, nb, distance=dist)
                graph.add_edge(nb, node_id, distance=dist)
                self._prune(nb, layer)
            eps = found

        if level > top:
            while len(self._layers) <= level:
                self._layers.append(nx.DiGraph())
            for layer in range(top + 1, level + 1):
                self._layers[layer].add_node(node_id)
            self._entry_point = node_id
            logger.debug("New entry point %d at level %d", node_id, level)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def mark_deleted(self, node_id: int) -> bool:
        """Tombstone *node_id*. Returns ``False`` if unknown or already deleted."""
        if node_id not in self._vectors or node_id in self._deleted:
            return False
        self._deleted.add(node_id)
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: Union[Sequence[float], np.ndarray],
        k: int,
    ) -> List[Tuple[int, float]]:
        """Approximate *k* nearest live neighbors of *query*.

        Returns ``(id, distance)`` pairs, ascending distance, ties by lower id.
        Always ``min(k, len(self))`` results long.
        """
        vec = self._check_dimension(query)
        if k < 0:
            raise ValueError(f"k must be >= 0, got {k}")
        wanted = min(k, len(self))
        if wanted == 0:
            return []

        norm = vector_norm(vec)
        eps = self._descend(vec, norm, 0)
        found = self._search_layer(vec, norm, eps, max(self._ef_search, k), 0, skip_deleted=True)

        if len(found) < wanted:
            # Tombstones can cut the live part of the graph off from the entry point
            logger.warning(
                "Graph search found %d of %d results, falling back to exact scan",
                len(found), wanted,
            )
            found = self._exact(vec, norm)

        return [(node, dist) for dist, node in found[:k]]

    def _exact(self, query: np.ndarray, query_norm: float) -> List[Candidate]:
        return sorted((self._distance_to(query, query_norm, i), i) for i in self.ids())

    def exact_search(
        self,
        query: Union[Sequence[float], np.ndarray],
        k: int,
    ) -> List[Tuple[int, float]]:
        """Brute-force *k* nearest live neighbors; the ground truth for recall checks."""
        vec = self._check_dimension(query)
        if k < 0:
            raise ValueError(f"k must be >= 0, got {k}")
        found = self._exact(vec, vector_norm(vec))
        return [(node, dist) for dist, node in found[:k]]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        return {
            "nodes": len(self._vectors),
            "live": len(self),
            "deleted": len(self._deleted),
            "levels": len(self._layers),
            "edges_per_layer": [g.number_of_edges() for g in self._layers],
            "entry_point": self._entry_point,
        }
