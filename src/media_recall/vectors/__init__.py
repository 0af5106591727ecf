"""Vector indexes for media-recall."""

from .base import (
    UPSERT_BATCH_SIZE,
    VectorFilter,
    VectorIndex,
    VectorMatch,
    VectorRecord,
    chunked,
    cosine_similarity,
)
from .memory import InMemoryVectorIndex
from .pinecone import PineconeVectorIndex

__all__ = [
    "UPSERT_BATCH_SIZE",
    "VectorFilter",
    "VectorIndex",
    "VectorMatch",
    "VectorRecord",
    "chunked",
    "cosine_similarity",
    "InMemoryVectorIndex",
    "PineconeVectorIndex",
]
