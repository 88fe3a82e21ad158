"""Heuristic re-ranking of the raw top-k candidates."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from askdocs.models import RankedCandidate, ScoredCandidate


@dataclass(frozen=True)
class RankingConfig:
    """Configuration for candidate ranking."""

    score_threshold: float = 0.20
    exact_mention_boost: float = 0.6
    doc_frequency_boost_unit: float = 0.02
    fallback_count: int = 3
    document_extensions: Sequence[str] = ("txt", "md", "pdf")


@dataclass(frozen=True)
class RankingResult:
    """Ranked candidates plus what the ranker did to produce them."""

    candidates: Sequence[RankedCandidate]
    boosted_doc: str | None = None
    used_fallback: bool = False
    boosted_ids: Sequence[str] = field(default_factory=tuple)


def find_filename_mention(question: str, extensions: Sequence[str]) -> str | None:
    """Return the first ``name.ext`` token in the question, lower-cased."""

    if not extensions:
        return None
    alternatives = "|".join(re.escape(ext.lstrip(".")) for ext in extensions)
    match = re.search(rf"([a-zA-Z0-9_\-]+\.(?:{alternatives}))", question, flags=re.IGNORECASE)
    if match is None:
        return None
    return match.group(1).lower()


class CandidateRanker:
    """Boosts, filters and re-ranks the candidates returned by the vector store."""

    def __init__(self, config: RankingConfig | None = None) -> None:
        self._config = config or RankingConfig()

    @property
    def config(self) -> RankingConfig:
        return self._config

    def rank(self, question: str, raw_candidates: Sequence[ScoredCandidate]) -> list[RankedCandidate]:
        return list(self.rank_with_details(question, raw_candidates).candidates)

    def rank_with_details(self, question: str, raw_candidates: Sequence[ScoredCandidate]) -> RankingResult:
        if not raw_candidates:
            return RankingResult(candidates=[])
        boosted_doc, boosted_ids = self._boost_exact_mention(question, raw_candidates)
        survivors = [c for c in raw_candidates if c.score >= self._config.score_threshold]
        used_fallback = not survivors
        if used_fallback:
            survivors = list(raw_candidates[: min(self._config.fallback_count, len(raw_candidates))])
        return RankingResult(
            candidates=self._rerank_by_doc_frequency(survivors),
            boosted_doc=boosted_doc,
            used_fallback=used_fallback,
            boosted_ids=tuple(boosted_ids),
        )

    def _boost_exact_mention(
        self, question: str, candidates: Sequence[ScoredCandidate]
    ) -> tuple[str | None, list[str]]:
        filename = find_filename_mention(question, self._config.document_extensions)
        if filename is None:
            return None, []
        boosted: list[str] = []
        for candidate in candidates:
            if candidate.doc and candidate.doc.lower() == filename:
                candidate.score += self._config.exact_mention_boost
                boosted.append(candidate.id)
        return filename, boosted

    def _rerank_by_doc_frequency(self, candidates: Sequence[ScoredCandidate]) -> list[RankedCandidate]:
        counts = Counter(c.doc for c in candidates)
        unit = self._config.doc_frequency_boost_unit
        ranked = [
            RankedCandidate(
                id=c.id,
                doc=c.doc,
                chunk_index=c.chunk_index,
                text=c.text,
                score=c.score,
                re_rank_score=c.score + unit * (counts[c.doc] - 1),
            )
            for c in candidates
        ]
        ranked.sort(key=lambda c: c.re_rank_score, reverse=True)
        return ranked
