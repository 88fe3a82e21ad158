"""Generation backends for askdocs."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from askdocs.config import Settings
from askdocs.errors import GenerationError
from askdocs.services.contract import REFUSAL_ANSWER

LOGGER = logging.getLogger(__name__)

_CONTEXT_BLOCK = re.compile(r"\[\[(\d+)\]\] DOC: (?P<doc>[^\n]+)#(?P<chunk>\d+)\n(?P<text>.*?)\n---", re.DOTALL)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s")


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gpt-4o-mini"
    max_output_tokens: int = 512
    device: str | None = None
    api_key: str | None = None


class GenerationBackend(Protocol):
    """Protocol describing generation behaviour."""

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        """Return the raw model output for the supplied prompts."""


class ExtractiveGenerator:
    """Deterministic generator used for tests and offline environments.

    Answers with the first sentence of the top context block and cites it, or
    emits the refusal object when the prompt carries no context.
    """

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        match = _CONTEXT_BLOCK.search(user_prompt)
        if match is None or not match.group("text").strip():
            return json.dumps({"answer": REFUSAL_ANSWER, "sources": []})
        text = match.group("text").strip()
        answer = _SENTENCE_END.split(text, maxsplit=1)[0]
        source = {"doc": match.group("doc"), "chunkIndex": int(match.group("chunk")), "score": 1.0}
        return json.dumps({"answer": answer, "sources": [source]})


class TransformersGenerator:
    """Generator running a local chat model through Transformers."""

    def __init__(self, config: GenerationConfig | None = None) -> None:
        self._config = config or GenerationConfig(model="Qwen/Qwen2.5-1.5B-Instruct")
        from transformers import AutoModelForCausalLM, AutoTokenizer

        self._tokenizer = AutoTokenizer.from_pretrained(self._config.model, trust_remote_code=True)
        self._model = AutoModelForCausalLM.from_pretrained(self._config.model, trust_remote_code=True)
        if self._tokenizer.pad_token is None and self._tokenizer.eos_token is not None:
            self._tokenizer.pad_token = self._tokenizer.eos_token
        if getattr(self._model.config, "pad_token_id", None) is None and self._tokenizer.pad_token_id is not None:
            self._model.config.pad_token_id = self._tokenizer.pad_token_id
        if self._config.device:
            self._model.to(self._config.device)
        LOGGER.info("Loaded generation model %s", self._config.model)

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        import torch

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        try:
            prompt = self._tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
            tokenized = self._tokenizer(prompt, return_tensors="pt", padding=True)
            input_ids = tokenized.input_ids
            attention_mask = tokenized.attention_mask
            prompt_length = input_ids.shape[1]
            if self._config.device:
                input_ids = input_ids.to(self._config.device)
                attention_mask = attention_mask.to(self._config.device)
            sampling = {"do_sample": True, "temperature": temperature} if temperature > 0 else {"do_sample": False}
            with torch.no_grad():
                output = self._model.generate(
                    input_ids,
                    attention_mask=attention_mask,
                    max_new_tokens=max_output_tokens,
                    **sampling,
                )
        except Exception as exc:
            raise GenerationError(f"Local generation failed: {exc}") from exc
        generated_tokens = output[0][prompt_length:]
        return self._tokenizer.decode(generated_tokens, skip_special_tokens=True).strip()


class OpenAIGenerator:
    """Generator calling the OpenAI Responses API."""

    def __init__(self, config: GenerationConfig | None = None, client=None) -> None:
        self._config = config or GenerationConfig()
        if client is None:
            from openai import OpenAI

            client = OpenAI(api_key=self._config.api_key) if self._config.api_key else OpenAI()
        self._client = client

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float = 0.0,
    ) -> str:
        try:
            response = self._client.responses.create(
                model=self._config.model,
                input=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_output_tokens=max_output_tokens,
                temperature=temperature,
            )
        except Exception as exc:
            raise GenerationError(f"Generation request failed: {exc}") from exc
        return _response_text(response).strip()


def _response_text(response) -> str:
    text = getattr(response, "output_text", None)
    if isinstance(text, str):
        return text
    parts: list[str] = []
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            parts.append(getattr(content, "text", "") or "")
    return "".join(parts)


def build_generation_backend(settings: Settings) -> GenerationBackend:
    """Instantiate the generation backend selected in settings."""

    config = GenerationConfig(
        model=settings.generation_model,
        max_output_tokens=settings.generation_max_output_tokens,
        device=settings.generation_device,
        api_key=settings.openai_api_key,
    )
    if settings.generation_provider == "extractive":
        return ExtractiveGenerator()
    if settings.generation_provider == "transformers":
        return TransformersGenerator(config)
    return OpenAIGenerator(config)
