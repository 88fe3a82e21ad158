"""Offline indexer that turns a docs directory into a vector collection."""

from __future__ import annotations

import json
import re
import time
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Sequence

from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_community.document_loaders.base import BaseLoader

from askdocs.embeddings.service import EmbeddingBackend
from askdocs.errors import AskDocsError
from askdocs.metrics.observability import get_logger
from askdocs.models import ChunkRecord


class IngestionError(AskDocsError):
    """Raised when a document cannot be indexed."""


class UnsupportedFileTypeError(IngestionError):
    """Raised when a document extension has no loader."""


@dataclass(frozen=True)
class IndexingConfig:
    """Configuration for building a collection."""

    chunk_size_words: int = 400
    batch_size: int = 16
    extensions: Sequence[str] = (".txt", ".md")
    encoding: str = "utf-8"


def _normalize_text(raw: str) -> str:
    normalized = unicodedata.normalize("NFKC", raw)
    normalized = normalized.replace("\u00a0", " ")
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip()


def split_words(text: str, chunk_size_words: int) -> list[str]:
    """Split text into consecutive windows of at most ``chunk_size_words`` words."""

    words = text.split()
    return [" ".join(words[i : i + chunk_size_words]) for i in range(0, len(words), chunk_size_words)]


class CollectionBuilder:
    """Loads, chunks and embeds documents into ``ChunkRecord`` entries."""

    _LOADERS: Mapping[str, type[BaseLoader]] = {
        ".txt": TextLoader,
        ".md": TextLoader,
        ".pdf": PyPDFLoader,
    }

    _logger = get_logger("ingestion")

    def __init__(self, embedding_backend: EmbeddingBackend, config: IndexingConfig | None = None) -> None:
        self._backend = embedding_backend
        self._config = config or IndexingConfig()
        if self._config.chunk_size_words < 1:
            raise ValueError("chunk_size_words must be >= 1")
        if self._config.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    def discover(self, docs_dir: Path) -> list[Path]:
        if not docs_dir.is_dir():
            raise IngestionError(f"Docs folder not found: {docs_dir}")
        suffixes = {ext.lower() for ext in self._config.extensions}
        return sorted(
            (path for path in docs_dir.iterdir() if path.is_file() and path.suffix.lower() in suffixes),
            key=lambda path: path.name,
        )

    def build(self, docs_dir: Path) -> list[ChunkRecord]:
        records: List[ChunkRecord] = []
        for path in self.discover(docs_dir):
            records.extend(self.index_file(path))
        self._logger.info("ingestion.collection_built", docs_dir=str(docs_dir), chunk_count=len(records))
        return records

    def index_file(self, path: Path) -> list[ChunkRecord]:
        start = time.perf_counter()
        chunks = split_words(self._load_text(path), self._config.chunk_size_words)
        records: List[ChunkRecord] = []
        for offset in range(0, len(chunks), self._config.batch_size):
            batch = chunks[offset : offset + self._config.batch_size]
            self._logger.debug("ingestion.embedding_batch", path=path.name, offset=offset, size=len(batch))
            vectors = self._backend.embed_texts(batch)
            for position, (text, vector) in enumerate(zip(batch, vectors, strict=True)):
                chunk_index = offset + position
                records.append(
                    ChunkRecord(
                        id=f"{path.name}#{chunk_index}",
                        doc=path.name,
                        chunk_index=chunk_index,
                        text=text,
                        embedding=tuple(vector),
                    )
                )
        self._logger.info(
            "ingestion.complete",
            path=str(path),
            chunk_count=len(records),
            duration_seconds=time.perf_counter() - start,
        )
        return records

    def _load_text(self, path: Path) -> str:
        loader_cls = self._LOADERS.get(path.suffix.lower())
        if loader_cls is None:
            raise UnsupportedFileTypeError(f"Unsupported document type: {path.suffix or '<none>'}")
        try:
            loader = self._build_loader(loader_cls, path)
            documents = loader.load()
        except Exception as exc:  # pragma: no cover - loader specific errors
            raise IngestionError(f"Failed to load {path}: {exc}") from exc
        return _normalize_text(" ".join(document.page_content for document in documents))

    def _build_loader(self, loader_cls: type[BaseLoader], path: Path) -> BaseLoader:
        if loader_cls is TextLoader:
            return loader_cls(str(path), encoding=self._config.encoding)
        return loader_cls(str(path))


def record_to_json(record: ChunkRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "doc": record.doc,
        "chunkIndex": record.chunk_index,
        "text": record.text,
        "embedding": list(record.embedding),
    }


def write_collection(records: Iterable[ChunkRecord], path: Path) -> int:
    """Write records as the JSON array read by ``VectorStore.load``."""

    payload = [record_to_json(record) for record in records]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return len(payload)
