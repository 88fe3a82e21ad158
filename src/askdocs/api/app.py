"""FastAPI application exposing the ask pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from askdocs.api.schemas import (
    AskRequest,
    AskResponse,
    ClientErrorResponse,
    ContractErrorResponse,
    ReadinessResponse,
    ServerErrorResponse,
    UsedContext,
)
from askdocs.config import Settings, get_settings
from askdocs.embeddings import VectorStore, build_embedding_backend
from askdocs.metrics.observability import (
    PipelineMetrics,
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_logger,
)
from askdocs.retrieval.service import CandidateRanker, RankingConfig
from askdocs.services.generation import build_generation_backend
from askdocs.services.query import (
    QUESTION_REQUIRED,
    AskContractFailed,
    AskRejected,
    AskSucceeded,
    QueryConfig,
    QueryService,
)


@dataclass(frozen=True)
class AppDependencies:
    store: VectorStore
    query_service: QueryService


def build_dependencies(settings: Settings) -> AppDependencies:
    """Load the collection once and wire the pipeline around it.

    Raises ``StoreLoadError`` when the collection cannot be loaded, so the
    process never serves traffic without one.
    """

    store = VectorStore.load(settings.vectors_path)
    PipelineMetrics.collection_chunk_count.set(len(store))
    ranker = CandidateRanker(
        RankingConfig(
            score_threshold=settings.score_threshold,
            exact_mention_boost=settings.exact_mention_boost,
            doc_frequency_boost_unit=settings.doc_frequency_boost_unit,
            fallback_count=settings.fallback_count,
            document_extensions=settings.document_extensions_tuple,
        ),
    )
    query_service = QueryService(
        store=store,
        embedder=build_embedding_backend(settings),
        generator=build_generation_backend(settings),
        ranker=ranker,
        config=QueryConfig(
            top_k=settings.top_k,
            max_question_length=settings.max_question_length,
            max_output_tokens=settings.generation_max_output_tokens,
        ),
    )
    return AppDependencies(store=store, query_service=query_service)


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    app = FastAPI(title="askdocs API", version="0.1.0")
    app.state.dependencies = deps

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        PipelineMetrics.observe_outcome("server_error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ServerErrorResponse(details=str(exc)).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        if request.url.path != "/ask":
            return await request_validation_exception_handler(request, exc)
        # Bodies that are not a JSON object carry no usable question
        logger.info("ask.rejected", reason=QUESTION_REQUIRED, detail=[error["type"] for error in exc.errors()])
        PipelineMetrics.observe_outcome(QUESTION_REQUIRED)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ClientErrorResponse(error=QUESTION_REQUIRED).model_dump(),
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> QueryService:
        return dep.query_service

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> VectorStore:
        return dep.store

    @app.post(
        "/ask",
        response_model=AskResponse,
        responses={
            400: {"model": ClientErrorResponse},
            500: {"model": ContractErrorResponse},
        },
    )
    def ask(
        payload: Optional[AskRequest] = None,
        service: QueryService = Depends(get_query_service),
    ) -> JSONResponse:
        outcome = service.ask(payload.question if payload is not None else None)
        if isinstance(outcome, AskSucceeded):
            body = AskResponse(
                answer=outcome.answer,
                sources=list(outcome.sources),
                used_contexts=[UsedContext(**context) for context in outcome.used_contexts],
                latency_ms=outcome.latency_ms,
            )
            return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())
        if isinstance(outcome, AskRejected):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=ClientErrorResponse(error=outcome.error).model_dump(),
            )
        if isinstance(outcome, AskContractFailed):
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=_contract_error_body(outcome),
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ServerErrorResponse(details=outcome.details).model_dump(),
        )

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from askdocs import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready", response_model=ReadinessResponse)
    async def readiness(store: VectorStore = Depends(get_store)) -> ReadinessResponse:
        return ReadinessResponse(
            status="ready",
            chunks=len(store),
            documents=len(store.documents()),
            dimension=store.dimension,
        )

    return app


def _contract_error_body(outcome: AskContractFailed) -> dict:
    fields: dict = {
        "error": outcome.error,
        "used_contexts": [UsedContext(**context) for context in outcome.used_contexts],
        "latency_ms": outcome.latency_ms,
    }
    if outcome.error == "model_response_not_json":
        fields.update(raw=outcome.raw, parseError=outcome.parse_error)
    else:
        fields["parsed"] = outcome.parsed
    return ContractErrorResponse(**fields).model_dump(exclude_unset=True)


def main() -> None:
    import uvicorn

    settings = get_settings()
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":  # pragma: no cover - server entrypoint
    main()
