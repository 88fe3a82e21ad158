"""In-memory vector collection loaded from the indexer's JSON output."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from askdocs.errors import StoreLoadError
from askdocs.metrics.observability import get_logger
from askdocs.models import ChunkRecord, ScoredCandidate

_REQUIRED_FIELDS = ("id", "doc", "chunkIndex", "text", "embedding")


class VectorStore:
    """Read-only collection of chunk records scored by exhaustive cosine scan.

    Built once at startup and shared by reference; nothing mutates the
    records after construction.
    """

    _logger = get_logger("store")

    def __init__(self, records: Iterable[ChunkRecord]) -> None:
        self._records: tuple[ChunkRecord, ...] = tuple(records)
        self._dimension = _check_records(self._records)
        self._norms = tuple(_norm(record.embedding) for record in self._records)

    @classmethod
    def load(cls, source: str | Path) -> "VectorStore":
        """Load a collection file, raising ``StoreLoadError`` if it is unusable."""

        path = Path(source)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreLoadError(f"Cannot read vector collection {path}: {exc}") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreLoadError(f"Vector collection {path} is not valid JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise StoreLoadError(f"Vector collection {path} must be a JSON array of chunk records")
        records = [_parse_record(position, entry) for position, entry in enumerate(payload)]
        store = cls(records)
        cls._logger.info(
            "store.loaded",
            path=str(path),
            chunk_count=len(store),
            dimension=store.dimension,
        )
        return store

    @classmethod
    def from_records(cls, records: Iterable[ChunkRecord]) -> "VectorStore":
        return cls(records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def dimension(self) -> int | None:
        return self._dimension

    @property
    def records(self) -> Sequence[ChunkRecord]:
        return self._records

    def documents(self) -> list[str]:
        seen: dict[str, None] = {}
        for record in self._records:
            seen.setdefault(record.doc, None)
        return list(seen)

    def top_k(self, query_embedding: Sequence[float], k: int = 5) -> list[ScoredCandidate]:
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        if not self._records:
            return []
        if len(query_embedding) != self._dimension:
            raise ValueError(
                f"Query embedding has {len(query_embedding)} dimensions, collection has {self._dimension}"
            )
        query_norm = _norm(query_embedding)
        scored = [
            (_cosine(query_embedding, query_norm, record.embedding, norm), record)
            for record, norm in zip(self._records, self._norms)
        ]
        # list.sort is stable, so ties keep insertion order
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            ScoredCandidate(
                id=record.id,
                doc=record.doc,
                chunk_index=record.chunk_index,
                text=record.text,
                score=score,
            )
            for score, record in scored[:k]
        ]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return math.fsum(x * y for x, y in zip(a, b))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(_dot(vector, vector))


def _cosine(query: Sequence[float], query_norm: float, vector: Sequence[float], norm: float) -> float:
    if query_norm == 0.0 or norm == 0.0:
        return 0.0
    return _dot(query, vector) / (query_norm * norm)


def _parse_record(position: int, entry: Any) -> ChunkRecord:
    if not isinstance(entry, Mapping):
        raise StoreLoadError(f"Record {position} is not an object")
    missing = [name for name in _REQUIRED_FIELDS if name not in entry]
    if missing:
        raise StoreLoadError(f"Record {position} is missing fields: {', '.join(missing)}")
    chunk_index = entry["chunkIndex"]
    if isinstance(chunk_index, bool) or not isinstance(chunk_index, int) or chunk_index < 0:
        raise StoreLoadError(f"Record {position} has invalid chunkIndex {chunk_index!r}")
    for name in ("id", "doc", "text"):
        if not isinstance(entry[name], str):
            raise StoreLoadError(f"Record {position} field {name!r} must be a string")
    embedding = entry["embedding"]
    if not isinstance(embedding, list) or not all(
        isinstance(value, (int, float)) and not isinstance(value, bool) for value in embedding
    ):
        raise StoreLoadError(f"Record {position} embedding must be an array of numbers")
    try:
        vector = tuple(float(value) for value in embedding)
    except OverflowError as exc:
        raise StoreLoadError(f"Record {position} embedding has an out of range value") from exc
    # NaN scores would break the stable ordering of top_k
    if not all(math.isfinite(value) for value in vector):
        raise StoreLoadError(f"Record {position} embedding must contain only finite numbers")
    return ChunkRecord(
        id=entry["id"],
        doc=entry["doc"],
        chunk_index=chunk_index,
        text=entry["text"],
        embedding=vector,
    )


def _check_records(records: Sequence[ChunkRecord]) -> int | None:
    if not records:
        return None
    dimension = len(records[0].embedding)
    if dimension == 0:
        raise StoreLoadError(f"Record {records[0].id!r} has an empty embedding")
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            raise StoreLoadError(f"Duplicate chunk id {record.id!r}")
        seen.add(record.id)
        if len(record.embedding) != dimension:
            raise StoreLoadError(
                f"Chunk {record.id!r} has {len(record.embedding)} dimensions, expected {dimension}"
            )
    return dimension
