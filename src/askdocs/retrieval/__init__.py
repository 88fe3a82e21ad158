"""Retrieval components."""

from .service import CandidateRanker, RankingConfig, RankingResult, find_filename_mention

__all__ = ["CandidateRanker", "RankingConfig", "RankingResult", "find_filename_mention"]
