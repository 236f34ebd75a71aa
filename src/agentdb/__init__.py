"""
agentdb: In-process vector store and reasoning bank for AI-agent memory.

Components:
    HNSWIndex      - Approximate nearest-neighbor graph (NetworkX layers, NumPy distances)
    MetadataStore  - Vector id -> vector, metadata, creation time
    ReasoningBank  - Free-text context/reasoning pairs with substring search
    AgentDB        - Facade: ids, validation, events, snapshots

Usage:
    from agentdb import AgentDB

    db = AgentDB(dimension=384)
    vid = db.add_vector(embedding, {"source": "chat"})
    results = db.search(query_embedding, k=5)
"""

__version__ = "0.1.0"

from agentdb.config import StoreConfig
from agentdb.distance import DistanceMetric, cosine_similarity, distance
from agentdb.embeddings import SentenceTransformerEmbedder, random_embedding, simple_text_embedding
from agentdb.errors import AgentDBError, DimensionMismatchError, SnapshotError
from agentdb.events import EventEmitter, StoreEvent
from agentdb.hnsw_index import HNSWIndex
from agentdb.metadata_store import MetadataStore, VectorRecord
from agentdb.reasoning_bank import ReasoningBank, ReasoningRecord
from agentdb.store import AgentDB

__all__ = [
    "AgentDB",
    "StoreConfig",
    "HNSWIndex",
    "MetadataStore",
    "VectorRecord",
    "ReasoningBank",
    "ReasoningRecord",
    "EventEmitter",
    "StoreEvent",
    "DistanceMetric",
    "distance",
    "cosine_similarity",
    "simple_text_embedding",
    "random_embedding",
    "SentenceTransformerEmbedder",
    "AgentDBError",
    "DimensionMismatchError",
    "SnapshotError",
]
