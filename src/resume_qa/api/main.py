"""FastAPI entrypoint for query, health, cache and trace endpoints."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from resume_qa.config import RouterConfig
from resume_qa.ingest.knowledge import load_knowledge
from resume_qa.obs.logging import configure_logging
from resume_qa.router import Router
from resume_qa.types import ConversationTurn, QueryOptions, ResponseStyle

logger = structlog.get_logger(__name__)

DEFAULT_KNOWLEDGE_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_knowledge.json"


def _create_router() -> Router:
    return Router(RouterConfig(persona_name=os.getenv("RESUME_QA_PERSONA", "the candidate")))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(json=os.getenv("RESUME_QA_LOG_JSON", "").lower() in {"1", "true", "yes"})
    knowledge_path = os.getenv("RESUME_QA_KNOWLEDGE_PATH", str(DEFAULT_KNOWLEDGE_PATH))

    router = _create_router()
    await router.initialize(load_knowledge(knowledge_path))
    app.state.router = router
    logger.info("api_started", knowledge_path=knowledge_path)
    try:
        yield
    finally:
        router.cleanup()
        logger.info("api_stopped")


class TurnPayload(BaseModel):
    user_message: str
    response: str
    matched_sections: list[str] = Field(default_factory=list)


class QueryRequest(BaseModel):
    question: str = Field(min_length=1)
    style: ResponseStyle = ResponseStyle.DEVELOPER
    context: list[TurnPayload] = Field(default_factory=list)


app = FastAPI(title="Resume QA Router", version="0.1.0", lifespan=lifespan)


def _router(request: Request) -> Router:
    router = getattr(request.app.state, "router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Router is not initialized")
    return router


@app.get("/health")
def health(request: Request) -> dict[str, Any]:
    status = _router(request).get_status()
    return {"status": "ok" if status["workers_ready"] else "degraded", **status}


@app.post("/query")
async def query(payload: QueryRequest, request: Request) -> dict[str, Any]:
    options = QueryOptions(
        style=payload.style,
        context=[ConversationTurn(**turn.model_dump()) for turn in payload.context],
    )
    result = await _router(request).process_query(payload.question, options)
    return asdict(result)


@app.get("/metrics")
def metrics(request: Request) -> dict[str, Any]:
    return _router(request).trace_store.summary()


@app.get("/traces")
def traces(request: Request, limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in _router(request).trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str, request: Request) -> dict[str, Any]:
    try:
        record = _router(request).trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/cache")
def cache_stats(request: Request) -> dict[str, Any]:
    router = _router(request)
    return {
        "embedding": router.embedding_cache.stats(),
        "query": router.query_cache.stats(),
    }
