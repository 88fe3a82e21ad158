from __future__ import annotations

import json

import pytest

from askdocs.models import RankedCandidate
from askdocs.services.contract import (
    REFUSAL_ANSWER,
    REFUSAL_JSON,
    ContractOk,
    InvalidShape,
    NotJSON,
    PromptBuilder,
    parse_and_validate,
)


def _ranked(doc: str, index: int, text: str) -> RankedCandidate:
    return RankedCandidate(id=f"{doc}#{index}", doc=doc, chunk_index=index, text=text, score=0.5, re_rank_score=0.5)


def test_not_json():
    result = parse_and_validate("not json")
    assert isinstance(result, NotJSON)
    assert result.raw_text == "not json"
    assert result.parse_error


@pytest.mark.parametrize(
    "raw",
    ["NaN", "Infinity", "-Infinity", '{"answer":"x","sources":[NaN]}', '{"answer":"x","sources":[1e5, -Infinity]}'],
)
def test_non_standard_constants_are_not_json(raw):
    result = parse_and_validate(raw)
    assert isinstance(result, NotJSON)
    assert result.raw_text == raw
    assert "Invalid JSON constant" in result.parse_error


def test_overflowing_number_is_not_json():
    result = parse_and_validate('{"answer":"x","sources":[{"score":1e400}]}')
    assert isinstance(result, NotJSON)
    assert "Number out of range" in result.parse_error


def test_deeply_nested_output_is_not_json():
    raw = "[" * 100_000 + "]" * 100_000
    result = parse_and_validate(raw)
    assert isinstance(result, NotJSON)
    assert result.parse_error


def test_invalid_shape_for_missing_fields():
    result = parse_and_validate('{"foo":1}')
    assert isinstance(result, InvalidShape)
    assert result.parsed_value == {"foo": 1}


def test_invalid_shape_for_non_object_and_wrong_types():
    assert isinstance(parse_and_validate("[1, 2]"), InvalidShape)
    assert isinstance(parse_and_validate("null"), InvalidShape)
    assert isinstance(parse_and_validate('{"answer": 3, "sources": []}'), InvalidShape)
    assert isinstance(parse_and_validate('{"answer": "x", "sources": {}}'), InvalidShape)


def test_valid_answer_with_whitespace_and_extra_fields():
    result = parse_and_validate('\n  {"answer":"x","sources":[],"confidence":0.9}  \n')
    assert isinstance(result, ContractOk)
    assert result.value.answer == "x"
    assert list(result.value.sources) == []


def test_sources_entries_are_not_validated():
    result = parse_and_validate('{"answer":"x","sources":["whatever", 1]}')
    assert isinstance(result, ContractOk)
    assert list(result.value.sources) == ["whatever", 1]


def test_refusal_literal_is_a_valid_answer():
    assert REFUSAL_JSON == '{"answer":"I don\'t know based on the provided documents.","sources":[]}'
    result = parse_and_validate(REFUSAL_JSON)
    assert isinstance(result, ContractOk)
    assert result.value.answer == REFUSAL_ANSWER


def test_prompt_lists_context_blocks_in_ranked_order():
    prompt = PromptBuilder().build_prompt(
        "What is alpha?",
        [_ranked("b.txt", 2, "second text"), _ranked("a.md", 0, "first text")],
    )
    assert prompt.context_text.index("[[0]] DOC: b.txt#2\nsecond text") < prompt.context_text.index(
        "[[1]] DOC: a.md#0\nfirst text"
    )
    assert "Question: What is alpha?" in prompt.user_text
    assert prompt.context_text in prompt.user_text
    assert REFUSAL_JSON in prompt.instruction_text
    assert json.loads(REFUSAL_JSON)["sources"] == []


def test_prompt_is_deterministic():
    builder = PromptBuilder()
    candidates = [_ranked("a.txt", 0, "alpha")]
    assert builder.build_prompt("q", candidates) == builder.build_prompt("q", candidates)
