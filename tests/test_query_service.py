"""Tests for the ask pipeline state machine."""

from __future__ import annotations

import pytest

from askdocs.embeddings.store import VectorStore
from askdocs.errors import EmbeddingError
from askdocs.models import ChunkRecord
from askdocs.services.query import (
    AskContractFailed,
    AskFailed,
    AskRejected,
    AskSucceeded,
    QueryService,
    Stage,
)


class StubEmbedder:
    def __init__(self, vector: tuple[float, ...] = (1.0, 0.0), fail: bool = False) -> None:
        self.vector = vector
        self.fail = fail
        self.calls: list[str] = []

    def embed_texts(self, texts):
        return [self.vector for _ in texts]

    def embed_query(self, query: str):
        self.calls.append(query)
        if self.fail:
            raise EmbeddingError("rate limited")
        return self.vector


class StubGenerator:
    def __init__(self, output: str = '{"answer":"alpha","sources":[]}', error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[dict] = []

    def generate(self, *, system_prompt, user_prompt, max_output_tokens, temperature=0.0):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "max_output_tokens": max_output_tokens,
                "temperature": temperature,
            }
        )
        if self.error is not None:
            raise self.error
        return self.output


def _store() -> VectorStore:
    return VectorStore.from_records(
        [
            ChunkRecord(id="a.txt#0", doc="a.txt", chunk_index=0, text="alpha is first", embedding=(1.0, 0.0)),
            ChunkRecord(id="b.txt#0", doc="b.txt", chunk_index=0, text="bravo is second", embedding=(0.6, 0.8)),
            ChunkRecord(id="c.txt#0", doc="c.txt", chunk_index=0, text="charlie", embedding=(0.0, 1.0)),
        ]
    )


def _service(embedder=None, generator=None) -> QueryService:
    return QueryService(store=_store(), embedder=embedder or StubEmbedder(), generator=generator or StubGenerator())


@pytest.mark.parametrize("question", [None, "", "   ", 42, ["q"]])
def test_missing_question_is_rejected_without_provider_calls(question):
    embedder, generator = StubEmbedder(), StubGenerator()
    outcome = _service(embedder, generator).ask(question)
    assert outcome == AskRejected(error="question required")
    assert embedder.calls == []
    assert generator.calls == []


def test_question_length_boundary():
    service = _service()
    assert isinstance(service.ask("q" * 2000), AskSucceeded)
    assert service.ask("q" * 2001) == AskRejected(error="question too long")


def test_success_returns_answer_and_used_contexts():
    generator = StubGenerator('{"answer":"alpha","sources":[{"doc":"a.txt","chunkIndex":0,"score":1.0}]}')
    outcome = _service(generator=generator).ask("what is alpha?")
    assert isinstance(outcome, AskSucceeded)
    assert outcome.answer == "alpha"
    assert outcome.sources == [{"doc": "a.txt", "chunkIndex": 0, "score": 1.0}]
    # c.txt scores 0.0 and is filtered by the threshold
    assert [c["doc"] for c in outcome.used_contexts] == ["a.txt", "b.txt"]
    assert outcome.used_contexts[0]["reRankScore"] == pytest.approx(1.0)
    assert outcome.latency_ms >= 0
    call = generator.calls[0]
    assert call["temperature"] == 0.0
    assert call["max_output_tokens"] == 512
    assert "[[0]] DOC: a.txt#0" in call["user_prompt"]


def test_not_json_output_is_reported_with_diagnostics():
    outcome = _service(generator=StubGenerator("Sure! The answer is alpha.")).ask("what is alpha?")
    assert isinstance(outcome, AskContractFailed)
    assert outcome.error == "model_response_not_json"
    assert outcome.raw == "Sure! The answer is alpha."
    assert outcome.parse_error
    assert outcome.used_contexts


def test_invalid_shape_is_not_masked_as_refusal():
    outcome = _service(generator=StubGenerator('{"foo": 1}')).ask("what is alpha?")
    assert isinstance(outcome, AskContractFailed)
    assert outcome.error == "invalid_model_json_shape"
    assert outcome.parsed == {"foo": 1}
    assert outcome.raw is None


def test_embedding_failure_is_server_error():
    generator = StubGenerator()
    outcome = _service(StubEmbedder(fail=True), generator).ask("what is alpha?")
    assert isinstance(outcome, AskFailed)
    assert outcome.error == "server_error"
    assert outcome.stage is Stage.EMBEDDING
    assert "rate limited" in outcome.details
    assert generator.calls == []


def test_generation_failure_is_wrapped():
    outcome = _service(generator=StubGenerator(error=RuntimeError("boom"))).ask("what is alpha?")
    assert isinstance(outcome, AskFailed)
    assert outcome.stage is Stage.GENERATING
    assert "boom" in outcome.details


class RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def _record(self, event: str, **kwargs) -> None:
        self.events.append((event, kwargs))

    debug = info = warning = error = _record


def _stages(logger: RecordingLogger) -> list[str]:
    return [fields["stage"] for event, fields in logger.events if event == "ask.stage"]


def test_stage_transitions_are_logged_in_order():
    service = _service()
    service._logger = RecordingLogger()
    assert isinstance(service.ask("what is alpha?"), AskSucceeded)
    assert _stages(service._logger) == [
        "validating",
        "embedding",
        "retrieving",
        "ranking",
        "generating",
        "validating_output",
    ]


def test_rejected_question_stops_after_validation():
    service = _service()
    service._logger = RecordingLogger()
    service.ask("   ")
    assert _stages(service._logger) == ["validating"]
