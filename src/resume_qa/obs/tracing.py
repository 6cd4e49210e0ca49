"""Per-query tracing and latency accounting."""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from resume_qa.types import QueryResult


@dataclass(slots=True)
class QueryTrace:
    trace_id: str
    timestamp_utc: str
    question: str
    intent: str | None
    method: str
    confidence: float
    latency_ms: float
    cache_hit: bool
    fallback_reason: str | None


class QueryTraceStore:
    """In-memory trace storage used for the `/metrics` endpoint.

    Only the most recent `max_records` traces are kept.
    """

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, QueryTrace] = {}
        self._max_records = max_records

    def record(self, question: str, result: QueryResult, *, cache_hit: bool) -> QueryTrace:
        trace = QueryTrace(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            question=question,
            intent=result.intent.value if result.intent is not None else None,
            method=result.method.value,
            confidence=result.confidence,
            latency_ms=result.processing_time_ms,
            cache_hit=cache_hit,
            fallback_reason=result.metrics.fallback_reason,
        )
        self._records[trace.trace_id] = trace
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return trace

    def get(self, trace_id: str) -> QueryTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[QueryTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int | dict[str, int]]:
        """Aggregate answer-quality and latency metrics."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_queries": 0,
                "by_method": {},
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_confidence": 0.0,
                "cache_hit_rate": 0.0,
                "fallback_count": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        by_method = Counter(record.method for record in records)

        return {
            "total_queries": total,
            "by_method": dict(by_method),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_confidence": sum(record.confidence for record in records) / total,
            "cache_hit_rate": sum(1 for record in records if record.cache_hit) / total,
            "fallback_count": sum(1 for record in records if record.fallback_reason),
        }


class Timer:
    """Simple context timer used around each pipeline stage."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = self.elapsed_now()

    def elapsed_now(self) -> float:
        """Milliseconds since entering, readable while the block is still running."""
        return (time.perf_counter() - self._start) * 1000.0
