"""
Distance metrics used by the HNSW index.

Conventions follow hnswlib: ``l2`` is the squared Euclidean distance and
``ip`` is ``1 - dot(a, b)``. Smaller is always closer.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Sequence, Union

import numpy as np

__all__ = [
    "DistanceMetric",
    "DistanceFn",
    "as_vector",
    "vector_norm",
    "get_distance_fn",
    "distance",
    "cosine_similarity",
]

# fn(a, b, norm_a, norm_b) -> distance
DistanceFn = Callable[[np.ndarray, np.ndarray, float, float], float]


class DistanceMetric(str, Enum):
    """Distance metrics for similarity search."""

    COSINE = "cosine"
    L2 = "l2"
    IP = "ip"


def as_vector(values: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """Return *values* as a flat float32 array (no copy if already one)."""
    vec = np.asarray(values, dtype=np.float32)
    return vec if vec.ndim == 1 else vec.reshape(-1)


def vector_norm(vector: np.ndarray) -> float:
    return float(np.linalg.norm(vector))


def _cosine(a: np.ndarray, b: np.ndarray, norm_a: float, norm_b: float) -> float:
    if norm_a == 0.0 or norm_b == 0.0:
        return 1.0
    # float32 rounding can push identical vectors slightly below zero
    return max(0.0, 1.0 - float(np.dot(a, b)) / (norm_a * norm_b))


def _l2(a: np.ndarray, b: np.ndarray, norm_a: float = 0.0, norm_b: float = 0.0) -> float:
    diff = a - b
    return float(np.dot(diff, diff))


def _ip(a: np.ndarray, b: np.ndarray, norm_a: float = 0.0, norm_b: float = 0.0) -> float:
    return 1.0 - float(np.dot(a, b))


_DISTANCE_FNS = {
    DistanceMetric.COSINE: _cosine,
    DistanceMetric.L2: _l2,
    DistanceMetric.IP: _ip,
}


def get_distance_fn(metric: Union[str, DistanceMetric]) -> DistanceFn:
    """Look up the distance function for *metric*. Raises ``ValueError`` if unknown."""
    return _DISTANCE_FNS[DistanceMetric(metric)]


def distance(
    a: Union[Sequence[float], np.ndarray],
    b: Union[Sequence[float], np.ndarray],
    metric: Union[str, DistanceMetric] = DistanceMetric.COSINE,
) -> float:
    """Distance between two vectors under *metric*."""
    va, vb = as_vector(a), as_vector(b)
    if va.shape != vb.shape:
        raise ValueError("Vectors must have the same dimension")
    return get_distance_fn(metric)(va, vb, vector_norm(va), vector_norm(vb))


def cosine_similarity(
    a: Union[Sequence[float], np.ndarray],
    b: Union[Sequence[float], np.ndarray],
) -> float:
    """Cosine similarity in ``[-1, 1]``; ``0.0`` if either vector is all zeros."""
    va, vb = as_vector(a), as_vector(b)
    if va.shape != vb.shape:
        raise ValueError("Vectors must have the same dimension")
    na, nb = vector_norm(va), vector_norm(vb)
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb)) / (na * nb)
