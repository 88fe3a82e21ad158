"""Shared domain models used across the askdocs pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


@dataclass(frozen=True)
class ChunkRecord:
    """Persisted chunk of a source document together with its embedding."""

    id: str
    doc: str
    chunk_index: int
    text: str
    embedding: tuple[float, ...] = field(repr=False)


@dataclass
class ScoredCandidate:
    """Chunk returned from the vector store for a single query.

    ``score`` starts as the cosine similarity and may be raised in place by
    the ranker's exact-mention boost.
    """

    id: str
    doc: str
    chunk_index: int
    text: str
    score: float


@dataclass(frozen=True)
class RankedCandidate:
    """Candidate that survived filtering, with its document-frequency score."""

    id: str
    doc: str
    chunk_index: int
    text: str
    score: float
    re_rank_score: float

    def to_context(self) -> Mapping[str, Any]:
        return {
            "doc": self.doc,
            "chunkIndex": self.chunk_index,
            "score": self.score,
            "reRankScore": self.re_rank_score,
        }


@dataclass(frozen=True)
class QueryContext:
    """Question and its embedding, built once per request."""

    question: str
    query_embedding: tuple[float, ...] = field(repr=False)


@dataclass(frozen=True)
class ContractAnswer:
    """Model output that satisfied the answer contract."""

    answer: str
    sources: Sequence[Any]
