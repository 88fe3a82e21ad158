from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from askdocs.errors import GenerationError
from askdocs.models import RankedCandidate
from askdocs.services.contract import REFUSAL_ANSWER, ContractOk, PromptBuilder, parse_and_validate
from askdocs.services.generation import ExtractiveGenerator, OpenAIGenerator


class FakeResponsesAPI:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.kwargs: dict = {}

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.response


def _generate(generator, user_prompt: str = "Question: q") -> str:
    return generator.generate(system_prompt="sys", user_prompt=user_prompt, max_output_tokens=64)


def test_extractive_generator_cites_top_block():
    prompt = PromptBuilder().build_prompt(
        "q",
        [
            RankedCandidate(id="n#3", doc="notes v2.md", chunk_index=3, text="First line. Second.", score=0.4, re_rank_score=0.4),
            RankedCandidate(id="o#0", doc="other.txt", chunk_index=0, text="Ignored.", score=0.3, re_rank_score=0.3),
        ],
    )
    result = parse_and_validate(_generate(ExtractiveGenerator(), prompt.user_text))
    assert isinstance(result, ContractOk)
    assert result.value.answer == "First line."
    assert result.value.sources == [{"doc": "notes v2.md", "chunkIndex": 3, "score": 1.0}]


def test_extractive_generator_refuses_without_context():
    raw = _generate(ExtractiveGenerator(), PromptBuilder().build_prompt("q", []).user_text)
    assert json.loads(raw) == {"answer": REFUSAL_ANSWER, "sources": []}


def test_openai_generator_uses_output_text_and_fixed_temperature():
    api = FakeResponsesAPI(SimpleNamespace(output_text='  {"answer":"x","sources":[]}\n'))
    generator = OpenAIGenerator(client=SimpleNamespace(responses=api))
    assert _generate(generator) == '{"answer":"x","sources":[]}'
    assert api.kwargs["temperature"] == 0.0
    assert api.kwargs["max_output_tokens"] == 64
    assert [m["role"] for m in api.kwargs["input"]] == ["system", "user"]


def test_openai_generator_joins_output_content_when_text_missing():
    response = SimpleNamespace(
        output_text=None,
        output=[SimpleNamespace(content=[SimpleNamespace(text='{"answer":'), SimpleNamespace(text='"y","sources":[]}')])],
    )
    generator = OpenAIGenerator(client=SimpleNamespace(responses=FakeResponsesAPI(response)))
    assert _generate(generator) == '{"answer":"y","sources":[]}'


def test_openai_generator_wraps_errors():
    generator = OpenAIGenerator(client=SimpleNamespace(responses=FakeResponsesAPI(error=TimeoutError("slow"))))
    with pytest.raises(GenerationError):
        _generate(generator)
