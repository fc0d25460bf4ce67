"""FastAPI application exposing ingestion and querying as a REST API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from crm_rag.config import settings
from crm_rag.errors import (
    AggregateIngestionError,
    EmptyIngestionError,
    GenerationFailedError,
    QueryValidationError,
    RetrievalFailedError,
)
from crm_rag.generation.service import QueryService
from crm_rag.ingestion.models import IngestionRequest, IngestionResult
from crm_rag.ingestion.orchestrator import IngestionOrchestrator
from crm_rag.retrieval.models import RetrieveOptions

logger = logging.getLogger(__name__)


# ── Request schemas ───────────────────────────────────────────────────
class _CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryBody(_CamelBody):
    """Incoming question.  ``query`` is validated by the service."""

    query: Any = None
    options: RetrieveOptions | None = None


class ConversationBody(QueryBody):
    """Follow-up question with prior turns.  ``history`` is validated by the service."""

    history: Any = None


class BulkIngestBody(_CamelBody):
    requests: list[IngestionRequest] = Field(default_factory=list)


# ── Helpers ───────────────────────────────────────────────────────────
def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _ingest_response(result: IngestionResult) -> dict[str, Any]:
    return {
        "success": result.total > 0 or not result.failures,
        "message": result.summary(),
        "count": result.total,
        **result.model_dump(mode="json", by_alias=True, include={"by_type", "failures", "skipped", "cancelled"}),
    }


def _orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def _query_service(request: Request) -> QueryService:
    return request.app.state.query_service


# ── App factory ───────────────────────────────────────────────────────
def create_app(
    orchestrator: IngestionOrchestrator | None = None,
    query_service: QueryService | None = None,
) -> FastAPI:
    """Return the API app.

    Components that are not passed in are built from settings when the
    app starts (see :func:`crm_rag.factory.build_components`).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "orchestrator", None) is None or getattr(app.state, "query_service", None) is None:
            from crm_rag.factory import build_components

            components = build_components()
            app.state.orchestrator = app.state.orchestrator or components.orchestrator
            app.state.query_service = app.state.query_service or components.query_service
            logger.info("Components built for collection %s", settings.chroma_collection)
        yield

    app = FastAPI(
        title="CRM RAG API",
        version="0.1.0",
        description="Retrieval-augmented question answering over shop CRM records.",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.query_service = query_service

    # ── Error mapping ─────────────────────────────────────────────────
    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, "Invalid request body", details=jsonable_errors(exc))

    @app.exception_handler(QueryValidationError)
    async def _bad_query(request: Request, exc: QueryValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(EmptyIngestionError)
    async def _empty_ingest(request: Request, exc: EmptyIngestionError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(AggregateIngestionError)
    async def _ingest_failed(request: Request, exc: AggregateIngestionError) -> JSONResponse:
        failures = [f.model_dump(mode="json", by_alias=True) for f in exc.failures]
        return _error(422, str(exc), failures=failures)

    @app.exception_handler(RetrievalFailedError)
    @app.exception_handler(GenerationFailedError)
    async def _upstream_failed(request: Request, exc: Exception) -> JSONResponse:
        return _error(502, str(exc))

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    @app.post("/api/query")
    async def query(body: QueryBody, request: Request) -> dict[str, Any]:
        """Answer a standalone question."""
        result = await _query_service(request).query(body.query, body.options)
        return result.model_dump(mode="json", by_alias=True)

    @app.post("/api/query/conversation")
    async def query_conversation(body: ConversationBody, request: Request) -> dict[str, Any]:
        """Answer a follow-up question using the conversation history."""
        result = await _query_service(request).query_conversation(body.query, body.history, body.options)
        return result.model_dump(mode="json", by_alias=True)

    @app.post("/api/ingest")
    async def ingest(body: IngestionRequest, request: Request) -> dict[str, Any]:
        """Ingest one data source."""
        result = await _orchestrator(request).ingest(body)
        return _ingest_response(result)

    @app.post("/api/ingest/bulk")
    async def ingest_bulk(body: BulkIngestBody, request: Request) -> dict[str, Any]:
        """Ingest several data sources concurrently."""
        result = await _orchestrator(request).ingest_bulk(body.requests)
        return _ingest_response(result)

    @app.get("/api/status")
    async def status(request: Request) -> dict[str, Any]:
        """Document count and readiness of the index."""
        result = await _query_service(request).status()
        return result.model_dump(mode="json", by_alias=True)

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Reduce validation errors to JSON-safe ``{loc, msg}`` pairs."""
    return [{"loc": [str(p) for p in err.get("loc", ())], "msg": str(err.get("msg", ""))} for err in exc.errors()]


app = create_app()
