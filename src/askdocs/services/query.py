"""Per-request orchestration of the ask pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union

from askdocs.embeddings.service import EmbeddingBackend
from askdocs.embeddings.store import VectorStore
from askdocs.errors import ClientInputError, EmbeddingError, GenerationError, ProviderError
from askdocs.metrics.observability import PipelineMetrics, TimedSection, get_logger
from askdocs.models import QueryContext, RankedCandidate, ScoredCandidate
from askdocs.retrieval.service import CandidateRanker
from askdocs.services.contract import InvalidShape, NotJSON, PromptBuilder, parse_and_validate
from askdocs.services.generation import GenerationBackend

QUESTION_REQUIRED = "question required"
QUESTION_TOO_LONG = "question too long"


class Stage(str, Enum):
    VALIDATING = "validating"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    RANKING = "ranking"
    GENERATING = "generating"
    VALIDATING_OUTPUT = "validating_output"


@dataclass(frozen=True)
class QueryConfig:
    """Configuration for the ask pipeline."""

    top_k: int = 5
    max_question_length: int = 2000
    max_output_tokens: int = 512
    temperature: float = 0.0


@dataclass(frozen=True)
class AskSucceeded:
    answer: str
    sources: Sequence[Any]
    used_contexts: Sequence[Mapping[str, Any]]
    latency_ms: int


@dataclass(frozen=True)
class AskRejected:
    """Client input failure; no provider was called."""

    error: str


@dataclass(frozen=True)
class AskContractFailed:
    """The model answered, but not with a valid contract object."""

    error: str
    used_contexts: Sequence[Mapping[str, Any]]
    latency_ms: int
    raw: str | None = None
    parse_error: str | None = None
    parsed: Any = None


@dataclass(frozen=True)
class AskFailed:
    """A provider or other server-side failure."""

    details: str
    stage: Stage
    error: str = field(default="server_error")


AskOutcome = Union[AskSucceeded, AskRejected, AskContractFailed, AskFailed]


def validate_question(question: object, max_length: int = 2000) -> str:
    """Return the question unchanged or raise ``ClientInputError``."""

    if not isinstance(question, str) or not question.strip():
        raise ClientInputError(QUESTION_REQUIRED)
    if len(question) > max_length:
        raise ClientInputError(QUESTION_TOO_LONG)
    return question


class QueryService:
    """Runs one question through validation, retrieval, ranking and generation.

    Collaborators are shared read-only across requests; all per-request
    state lives on the call stack.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingBackend,
        generator: GenerationBackend,
        ranker: CandidateRanker | None = None,
        prompt_builder: PromptBuilder | None = None,
        config: QueryConfig | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._generator = generator
        self._ranker = ranker or CandidateRanker()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._config = config or QueryConfig()
        self._logger = get_logger("query")

    def ask(self, question: object) -> AskOutcome:
        start = time.perf_counter()
        self._enter(Stage.VALIDATING)
        try:
            valid_question = validate_question(question, self._config.max_question_length)
        except ClientInputError as exc:
            self._logger.info("ask.rejected", reason=str(exc))
            return self._finish(AskRejected(error=str(exc)))

        try:
            stage = self._enter(Stage.EMBEDDING)
            context = self._embed(valid_question)
            stage = self._enter(Stage.RETRIEVING)
            retrieval_start = time.perf_counter()
            raw_candidates = self._store.top_k(context.query_embedding, self._config.top_k)
            stage = self._enter(Stage.RANKING)
            candidates = self._rank(context, raw_candidates, retrieval_start)
            stage = self._enter(Stage.GENERATING)
            raw_output = self._generate(context.question, candidates)
        except ProviderError as exc:
            self._logger.error("ask.provider_failed", stage=stage.value, detail=str(exc))
            return self._finish(AskFailed(details=str(exc), stage=stage))

        self._enter(Stage.VALIDATING_OUTPUT)
        used_contexts = [candidate.to_context() for candidate in candidates]
        result = parse_and_validate(raw_output)
        latency_ms = _elapsed_ms(start)
        if isinstance(result, NotJSON):
            self._logger.warning("ask.contract_failed", kind="not_json", parse_error=result.parse_error)
            return self._finish(
                AskContractFailed(
                    error="model_response_not_json",
                    raw=result.raw_text,
                    parse_error=result.parse_error,
                    used_contexts=used_contexts,
                    latency_ms=latency_ms,
                )
            )
        if isinstance(result, InvalidShape):
            self._logger.warning("ask.contract_failed", kind="invalid_shape")
            return self._finish(
                AskContractFailed(
                    error="invalid_model_json_shape",
                    parsed=result.parsed_value,
                    used_contexts=used_contexts,
                    latency_ms=latency_ms,
                )
            )
        self._logger.info("ask.complete", latency_ms=latency_ms, source_count=len(result.value.sources))
        return self._finish(
            AskSucceeded(
                answer=result.value.answer,
                sources=result.value.sources,
                used_contexts=used_contexts,
                latency_ms=latency_ms,
            )
        )

    def _enter(self, stage: Stage) -> Stage:
        self._logger.debug("ask.stage", stage=stage.value)
        return stage

    def _embed(self, question: str) -> QueryContext:
        with TimedSection(PipelineMetrics.observe_embedding):
            try:
                embedding = self._embedder.embed_query(question)
            except EmbeddingError:
                raise
            except Exception as exc:
                raise EmbeddingError(f"Failed to embed question: {exc}") from exc
        return QueryContext(question=question, query_embedding=tuple(embedding))

    def _rank(
        self, context: QueryContext, raw: Sequence[ScoredCandidate], retrieval_start: float
    ) -> Sequence[RankedCandidate]:
        ranking = self._ranker.rank_with_details(context.question, raw)
        duration = time.perf_counter() - retrieval_start
        PipelineMetrics.observe_retrieval(
            duration,
            len(ranking.candidates),
            (candidate.score for candidate in ranking.candidates),
            fallback=ranking.used_fallback,
        )
        self._logger.info(
            "retrieval.complete",
            raw_count=len(raw),
            chunk_count=len(ranking.candidates),
            boosted_doc=ranking.boosted_doc,
            used_fallback=ranking.used_fallback,
            duration_seconds=duration,
        )
        return ranking.candidates

    def _generate(self, question: str, candidates: Sequence[RankedCandidate]) -> str:
        prompt = self._prompt_builder.build_prompt(question, candidates)
        with TimedSection(PipelineMetrics.observe_generation) as timer:
            try:
                raw = self._generator.generate(
                    system_prompt=prompt.instruction_text,
                    user_prompt=prompt.user_text,
                    max_output_tokens=self._config.max_output_tokens,
                    temperature=self._config.temperature,
                )
            except GenerationError:
                raise
            except Exception as exc:
                raise GenerationError(f"Failed to generate answer: {exc}") from exc
        self._logger.info("generation.complete", duration_seconds=timer.duration, context_count=len(candidates))
        if not isinstance(raw, str):
            raw = str(raw)
        return raw

    @staticmethod
    def _finish(outcome: AskOutcome) -> AskOutcome:
        if isinstance(outcome, (AskRejected, AskContractFailed, AskFailed)):
            PipelineMetrics.observe_outcome(outcome.error)
        else:
            PipelineMetrics.observe_outcome("ok")
        return outcome


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
