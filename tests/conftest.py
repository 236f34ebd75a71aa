"""
Shared pytest fixtures for agentdb tests.

Everything runs in memory; sentence-transformers is mocked where needed.
"""

import numpy as np
import pytest
from unittest.mock import MagicMock, patch


# ----------------------------------------------------------------
# Vector fixtures
# ----------------------------------------------------------------

@pytest.fixture
def rng():
    """Seeded NumPy generator so random data is the same on every run."""
    return np.random.default_rng(42)


@pytest.fixture
def random_vectors(rng):
    """200 distinct random float32 vectors of length 16."""
    return rng.normal(size=(200, 16)).astype(np.float32)


@pytest.fixture
def basis_vectors():
    """The three vectors from the cosine ordering scenario."""
    return [
        [1.0, 0.0, 0.0, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [0.9, 0.1, 0.0, 0.0],
    ]


# ----------------------------------------------------------------
# Index fixtures
# ----------------------------------------------------------------

@pytest.fixture
def index():
    """Empty 4-dimensional cosine index."""
    from agentdb.hnsw_index import HNSWIndex
    return HNSWIndex(dimension=4)


@pytest.fixture
def populated_index(random_vectors):
    """Index over ``random_vectors`` with a small graph degree."""
    from agentdb.hnsw_index import HNSWIndex

    idx = HNSWIndex(dimension=16, m=8, ef_construction=100, ef_search=50)
    for i, vec in enumerate(random_vectors):
        idx.insert(i, vec)
    return idx


# ----------------------------------------------------------------
# Store fixtures
# ----------------------------------------------------------------

@pytest.fixture
def db():
    """Empty 4-dimensional AgentDB."""
    from agentdb.store import AgentDB
    return AgentDB(dimension=4)


@pytest.fixture
def scenario_db(db, basis_vectors):
    """AgentDB holding the three basis vectors as ids 0, 1, 2."""
    for i, vec in enumerate(basis_vectors):
        db.add_vector(vec, {"name": f"v{i}"})
    return db


@pytest.fixture
def loaded_db(random_vectors):
    """16-dimensional AgentDB with 200 vectors and a few reasoning entries."""
    from agentdb.store import AgentDB

    store = AgentDB(dimension=16, m=8, ef_construction=100)
    for i, vec in enumerate(random_vectors):
        store.add_vector(vec, {"n": i, "parity": "even" if i % 2 == 0 else "odd"})
    store.add_reasoning("User asked about Paris", "Paris is the capital of France")
    store.add_reasoning("Weather query", "It will rain tomorrow", {"source": "forecast"})
    return store


@pytest.fixture
def recorder():
    """Callable that records ``(event, payload)`` pairs, for event tests."""
    class Recorder:
        def __init__(self):
            self.calls = []

        def handler(self, name):
            def _handle(payload):
                self.calls.append((name, payload))
            return _handle

        @property
        def names(self):
            return [name for name, _ in self.calls]

    return Recorder()


# ----------------------------------------------------------------
# Store component fixtures
# ----------------------------------------------------------------

@pytest.fixture
def metadata_store():
    from agentdb.metadata_store import MetadataStore
    return MetadataStore()


@pytest.fixture
def reasoning_bank():
    from agentdb.reasoning_bank import ReasoningBank
    return ReasoningBank()


# ----------------------------------------------------------------
# Embedding fixtures
# ----------------------------------------------------------------

@pytest.fixture
def mock_sentence_transformers():
    """Mock the sentence_transformers module and reset the model cache."""
    from agentdb import embeddings

    mock_model = MagicMock()
    mock_model.encode.return_value = np.array([0.1, 0.2, 0.3], dtype=np.float32)
    mock_model.get_sentence_embedding_dimension.return_value = 3
    mock_cls = MagicMock(return_value=mock_model)

    saved = dict(embeddings._models)
    embeddings._models.clear()
    with patch.dict("sys.modules", {"sentence_transformers": MagicMock(SentenceTransformer=mock_cls)}):
        yield mock_cls, mock_model
    embeddings._models.clear()
    embeddings._models.update(saved)
