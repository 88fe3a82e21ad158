"""Service layer orchestrations for askdocs."""

from .contract import ContractOk, ContractResult, InvalidShape, NotJSON, Prompt, PromptBuilder, parse_and_validate
from .generation import (
    ExtractiveGenerator,
    GenerationBackend,
    GenerationConfig,
    OpenAIGenerator,
    TransformersGenerator,
    build_generation_backend,
)
from .query import (
    AskContractFailed,
    AskFailed,
    AskOutcome,
    AskRejected,
    AskSucceeded,
    QueryConfig,
    QueryService,
    Stage,
)

__all__ = [
    "AskContractFailed",
    "AskFailed",
    "AskOutcome",
    "AskRejected",
    "AskSucceeded",
    "ContractOk",
    "ContractResult",
    "ExtractiveGenerator",
    "GenerationBackend",
    "GenerationConfig",
    "InvalidShape",
    "NotJSON",
    "OpenAIGenerator",
    "Prompt",
    "PromptBuilder",
    "QueryConfig",
    "QueryService",
    "Stage",
    "TransformersGenerator",
    "build_generation_backend",
    "parse_and_validate",
]
