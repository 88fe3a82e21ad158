"""Pydantic models for the askdocs API."""

from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    # Left untyped so a missing or non-string question yields "question required"
    question: Any = Field(default=None, description="End-user question to answer")


class UsedContext(BaseModel):
    doc: str
    chunkIndex: int
    score: float
    reRankScore: float


class AskResponse(BaseModel):
    answer: str
    sources: List[Any]
    used_contexts: List[UsedContext]
    latency_ms: int


class ClientErrorResponse(BaseModel):
    error: Literal["question required", "question too long"]


class ContractErrorResponse(BaseModel):
    error: Literal["model_response_not_json", "invalid_model_json_shape"]
    raw: Optional[str] = None
    parseError: Optional[str] = None
    parsed: Any = None
    used_contexts: List[UsedContext]
    latency_ms: int


class ServerErrorResponse(BaseModel):
    error: Literal["server_error"] = "server_error"
    details: str


class ReadinessResponse(BaseModel):
    status: str
    chunks: int
    documents: int
    dimension: Optional[int] = None
