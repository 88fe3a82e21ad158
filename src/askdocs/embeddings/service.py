"""Embedding backends for askdocs."""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

from langchain_community.embeddings import HuggingFaceEmbeddings
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from askdocs.config import Settings
from askdocs.errors import EmbeddingError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding backends."""

    model: str = "text-embedding-3-large"
    dim: int = 384
    batch_size: int = 16
    device: str | None = None
    normalize: bool = True
    cache_folder: str | None = None
    api_key: str | None = None


class EmbeddingBackend(Protocol):
    """Protocol describing embedding behaviour."""

    def embed_texts(self, texts: Sequence[str]) -> list[Tuple[float, ...]]:
        """Return one embedding per input text, in order."""

    def embed_query(self, query: str) -> Tuple[float, ...]:
        """Return embedding vector for a query string."""


class HashEmbeddingBackend:
    """Deterministic lightweight embedding backend used for testing."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def _hash_to_vector(self, text: str) -> Tuple[float, ...]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        vector = [byte / 255.0 for byte in raw]
        if self._config.normalize:
            vector = list(_normalize(tuple(vector)))
        return tuple(vector)

    def embed_texts(self, texts: Sequence[str]) -> list[Tuple[float, ...]]:
        return [self._hash_to_vector(text) for text in texts]

    def embed_query(self, query: str) -> Tuple[float, ...]:
        return self._hash_to_vector(query)


class HuggingFaceEmbeddingBackend:
    """Sentence-embedding model loaded locally through LangChain."""

    def __init__(self, config: EmbeddingConfig | None = None, client: LangChainEmbeddings | None = None) -> None:
        self._config = config or EmbeddingConfig(model="BAAI/bge-small-en-v1.5")
        if client is not None:
            self._client = client
            return
        model_kwargs = {"device": self._config.device} if self._config.device else {}
        if self._config.cache_folder:
            model_kwargs["cache_dir"] = self._config.cache_folder
        self._client = HuggingFaceEmbeddings(
            model_name=self._config.model,
            model_kwargs=model_kwargs,
            encode_kwargs={"normalize_embeddings": self._config.normalize},
        )
        LOGGER.info("Loaded embedding model %s", self._config.model)

    def embed_texts(self, texts: Sequence[str]) -> list[Tuple[float, ...]]:
        if not texts:
            return []
        try:
            vectors = self._client.embed_documents(list(texts))
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed {len(texts)} texts: {exc}") from exc
        _check_count(vectors, texts)
        return [tuple(float(value) for value in vector) for vector in vectors]

    def embed_query(self, query: str) -> Tuple[float, ...]:
        try:
            vector = self._client.embed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {exc}") from exc
        return tuple(float(value) for value in vector)


class OpenAIEmbeddingBackend:
    """Embedding backend calling the OpenAI embeddings endpoint."""

    def __init__(self, config: EmbeddingConfig | None = None, client=None) -> None:
        self._config = config or EmbeddingConfig()
        if client is None:
            from openai import OpenAI

            client = OpenAI(api_key=self._config.api_key) if self._config.api_key else OpenAI()
        self._client = client

    def embed_texts(self, texts: Sequence[str]) -> list[Tuple[float, ...]]:
        if not texts:
            return []
        vectors: list[Tuple[float, ...]] = []
        try:
            for start in range(0, len(texts), self._config.batch_size):
                batch = list(texts[start : start + self._config.batch_size])
                response = self._client.embeddings.create(model=self._config.model, input=batch)
                vectors.extend(tuple(item.embedding) for item in response.data)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed {len(texts)} texts: {exc}") from exc
        _check_count(vectors, texts)
        LOGGER.info("Embedded %d texts with %s", len(texts), self._config.model)
        return vectors

    def embed_query(self, query: str) -> Tuple[float, ...]:
        try:
            response = self._client.embeddings.create(model=self._config.model, input=query)
            return tuple(response.data[0].embedding)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {exc}") from exc


def build_embedding_backend(settings: Settings) -> EmbeddingBackend:
    """Instantiate the embedding backend selected in settings."""

    config = EmbeddingConfig(
        model=settings.embedding_model,
        dim=settings.embedding_dim,
        batch_size=settings.embedding_batch_size,
        api_key=settings.openai_api_key,
    )
    if settings.embedding_provider == "hash":
        return HashEmbeddingBackend(config)
    if settings.embedding_provider == "huggingface":
        return HuggingFaceEmbeddingBackend(config)
    return OpenAIEmbeddingBackend(config)


def _check_count(vectors: Sequence[object], texts: Sequence[str]) -> None:
    if len(vectors) != len(texts):
        LOGGER.error("Embedding backend returned %d vectors for %d texts", len(vectors), len(texts))
        raise EmbeddingError("Mismatch between number of texts and embedding vectors")


def _normalize(vector: Tuple[float, ...]) -> Tuple[float, ...]:
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return tuple(value / norm for value in vector)
