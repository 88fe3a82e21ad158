"""Embedding backends and the in-memory vector store."""

from .service import (
    EmbeddingBackend,
    EmbeddingConfig,
    HashEmbeddingBackend,
    HuggingFaceEmbeddingBackend,
    OpenAIEmbeddingBackend,
    build_embedding_backend,
)
from .store import VectorStore

__all__ = [
    "EmbeddingBackend",
    "EmbeddingConfig",
    "HashEmbeddingBackend",
    "HuggingFaceEmbeddingBackend",
    "OpenAIEmbeddingBackend",
    "VectorStore",
    "build_embedding_backend",
]
