"""Shared domain models."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Intent(str, Enum):
    FACT_RETRIEVAL = "fact_retrieval"
    CONVERSATIONAL = "conversational"


class AnswerMethod(str, Enum):
    EQA = "eqa"
    GENERATION = "generation"
    FALLBACK = "fallback"
    ERROR = "error"


class ResponseStyle(str, Enum):
    DEVELOPER = "developer"
    HR = "hr"
    FRIEND = "friend"


@dataclass(slots=True)
class Chunk:
    """A segment of the knowledge base.

    `embedding` is assigned once by the router, either while initializing or
    the first time the chunk takes part in retrieval.
    """

    id: str
    text: str
    embedding: list[float] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScoredChunk:
    """A retrieval result with its cosine similarity to the query."""

    chunk: Chunk
    similarity: float


@dataclass(slots=True)
class MatchedChunk:
    """Detached view of a scored chunk carried inside a `QueryResult`."""

    chunk_id: str
    text: str
    similarity: float
    metadata: dict[str, Any]

    @classmethod
    def from_scored(cls, item: ScoredChunk) -> "MatchedChunk":
        return cls(
            chunk_id=item.chunk.id,
            text=item.chunk.text,
            similarity=item.similarity,
            metadata=copy.deepcopy(item.chunk.metadata),
        )


@dataclass(slots=True)
class ConversationTurn:
    """One earlier exchange, as remembered by the presentation layer."""

    user_message: str
    response: str
    matched_sections: list[str] = field(default_factory=list)


@dataclass(slots=True)
class QueryOptions:
    style: ResponseStyle = ResponseStyle.DEVELOPER
    context: list[ConversationTurn] = field(default_factory=list)


@dataclass(slots=True)
class StrategyOutcome:
    """Raw answer produced by a strategy, before validation."""

    answer: str
    confidence: float
    intent: Intent
    method: AnswerMethod
    matched: list[ScoredChunk]
    elapsed_ms: float = 0.0
    fallback_reason: str | None = None


@dataclass(slots=True)
class QueryMetrics:
    preprocessing_ms: float = 0.0
    embedding_ms: float = 0.0
    retrieval_ms: float = 0.0
    generation_ms: float = 0.0
    total_ms: float = 0.0
    quality_score: float = 0.0
    quality_flags: list[str] = field(default_factory=list)
    fallback_reason: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class QueryResult:
    """Final answer returned by `Router.process_query`."""

    answer: str
    confidence: float
    intent: Intent | None
    method: AnswerMethod
    matched_chunks: list[MatchedChunk]
    processing_time_ms: float
    metrics: QueryMetrics


@dataclass(slots=True)
class StrategyTrace:
    intent: Intent
    strategy: str
    method: AnswerMethod
    latency_ms: float
    fallback_reason: str | None = None
