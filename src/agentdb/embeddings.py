"""
Embedding helpers — turn text into vectors for :class:`agentdb.AgentDB`.

The store itself only deals in vectors; pass any ``fn(text) -> vector`` as
``embed_fn``. These are ready-made ones:

    simple_text_embedding   deterministic hash embedding, no model needed
    random_embedding        random unit vector, for tests and demos
    SentenceTransformerEmbedder  real embeddings via sentence-transformers
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

__all__ = [
    "simple_text_embedding",
    "random_embedding",
    "SentenceTransformerEmbedder",
]

# Lazy-loaded models, keyed by model name
_models: Dict[str, Any] = {}
_model_lock = threading.Lock()


def _get_model(model_name: str = "all-MiniLM-L6-v2"):
    """Lazy-load SentenceTransformer (heavy import), keyed by model name."""
    if model_name not in _models:
        with _model_lock:
            if model_name not in _models:
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as e:
                    raise ImportError(
                        "SentenceTransformerEmbedder requires sentence-transformers. "
                        "Install with: pip install agentdb[embeddings]"
                    ) from e
                _models[model_name] = SentenceTransformer(model_name)
    return _models[model_name]


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm > 0:
        vector /= norm
    return vector


def simple_text_embedding(text: str, dimension: int = 384) -> np.ndarray:
    """Hash characters into a unit vector of length *dimension*.

    Cheap and deterministic, but not semantic: texts sharing characters at
    similar positions land close together. Use a real model in production.
    """
    vector = np.zeros(dimension, dtype=np.float32)
    for i, ch in enumerate(text):
        code = ord(ch)
        vector[(code * (i + 1)) % dimension] += code / 255.0
    return _normalize(vector)


def random_embedding(
    dimension: int = 384,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Uniformly random unit vector."""
    rng = rng if rng is not None else np.random.default_rng()
    vector = rng.uniform(-1.0, 1.0, size=dimension).astype(np.float32)
    return _normalize(vector)


class SentenceTransformerEmbedder:
    """Callable ``text -> vector`` backed by a sentence-transformers model.

    The model is loaded on first use and shared across instances with the
    same *model_name*.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2") -> None:
        self.model_name = model_name

    @property
    def model(self):
        return _get_model(self.model_name)

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def __call__(self, text: str) -> List[float]:
        return self.model.encode(text).tolist()

    def embed_many(self, texts: Union[Sequence[str], List[str]]) -> List[List[float]]:
        if not texts:
            return []
        return self.model.encode(list(texts)).tolist()
