"""Prompt construction and validation of the model's structured answer."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Sequence, Union

from askdocs.models import ContractAnswer, RankedCandidate

REFUSAL_ANSWER = "I don't know based on the provided documents."
REFUSAL_JSON = json.dumps({"answer": REFUSAL_ANSWER, "sources": []}, separators=(",", ":"))

SYSTEM_PROMPT = (
    "You are a helpful assistant. Use ONLY the provided CONTEXT chunks to answer. "
    f"If the answer is not contained in the provided context, reply exactly with: {REFUSAL_JSON} "
    "(valid JSON). Do NOT add any extra text outside the JSON."
)


@dataclass(frozen=True)
class Prompt:
    """Instruction and user text handed to the generation backend."""

    instruction_text: str
    context_text: str
    user_text: str


@dataclass(frozen=True)
class ContractOk:
    value: ContractAnswer


@dataclass(frozen=True)
class NotJSON:
    """The model output could not be parsed as JSON."""

    raw_text: str
    parse_error: str


@dataclass(frozen=True)
class InvalidShape:
    """The model output parsed but is not ``{"answer": str, "sources": list}``."""

    parsed_value: Any


ContractResult = Union[ContractOk, NotJSON, InvalidShape]


class PromptBuilder:
    """Builds the strict JSON-only prompt for the generation backend."""

    def build_context(self, candidates: Sequence[RankedCandidate]) -> str:
        blocks = [
            f"[[{index}]] DOC: {candidate.doc}#{candidate.chunk_index}\n{candidate.text}\n---\n"
            for index, candidate in enumerate(candidates)
        ]
        return "\n".join(blocks)

    def build_prompt(self, question: str, candidates: Sequence[RankedCandidate]) -> Prompt:
        context_text = self.build_context(candidates)
        user_text = (
            f"Question: {question}\n\n"
            f"CONTEXT START\n{context_text}\nCONTEXT END\n\n"
            "INSTRUCTIONS:\n"
            "- Answer concisely using ONLY the context above.\n"
            '- Provide a JSON object with two keys: "answer" (string) and "sources" (array).\n'
            '- "sources" must be an array of objects {"doc":"<filename>","chunkIndex":<n>,"score":<float>} '
            "referencing only chunks from the CONTEXT.\n"
            f"- If context does not contain the answer, return: {REFUSAL_JSON}.\n"
            "- Output must be valid JSON and nothing else."
        )
        return Prompt(instruction_text=SYSTEM_PROMPT, context_text=context_text, user_text=user_text)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Invalid JSON constant {token!r}")


def _finite_float(token: str) -> float:
    value = float(token)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range {token!r}")
    return value


def parse_and_validate(raw_text: str) -> ContractResult:
    """Parse raw model output and check it against the answer contract.

    Only strict JSON is accepted: ``NaN``/``Infinity`` literals, numbers that
    overflow a float and input nested too deeply to decode come back as
    ``NotJSON``. Entries of ``sources`` are passed through without per-entry
    checks.
    """

    text = raw_text.strip()
    try:
        parsed = json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except (ValueError, RecursionError) as exc:
        return NotJSON(raw_text=text, parse_error=str(exc))
    if not isinstance(parsed, dict):
        return InvalidShape(parsed_value=parsed)
    answer = parsed.get("answer")
    sources = parsed.get("sources")
    if not isinstance(answer, str) or not isinstance(sources, list):
        return InvalidShape(parsed_value=parsed)
    return ContractOk(ContractAnswer(answer=answer, sources=sources))
