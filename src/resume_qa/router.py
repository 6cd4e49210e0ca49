"""Question routing over three message-driven inference services."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import structlog

from resume_qa.cache import CacheEvent, EmbeddingCache, QueryResultCache
from resume_qa.config import CacheConfig, RouterConfig
from resume_qa.errors import (
    ResumeQAError,
    UncaughtPipelineError,
    ValidationFallback,
    WorkerRuntimeError,
)
from resume_qa.generation.validator import ResponseValidator
from resume_qa.obs.tracing import QueryTraceStore, Timer
from resume_qa.query.intent import IntentClassifier
from resume_qa.query.preprocess import QueryPreprocessor
from resume_qa.retrieval.similarity import SimilarityRetriever
from resume_qa.strategies.base import ServiceClient
from resume_qa.strategies.conversational import ConversationalSynthesisStrategy
from resume_qa.strategies.fact import FactRetrievalStrategy
from resume_qa.strategies.registry import StrategyRegistry
from resume_qa.types import (
    AnswerMethod,
    Chunk,
    Intent,
    MatchedChunk,
    QueryMetrics,
    QueryOptions,
    QueryResult,
    StrategyTrace,
)
from resume_qa.workers.lifecycle import ServiceHandle
from resume_qa.workers.transport import WorkerFactory, thread_worker_factory

logger = structlog.get_logger(__name__)

EMBEDDING = "embedding"
GENERATION = "generation"
EQA = "eqa"

PROCESSING_ERROR_MESSAGE = "I encountered an error processing your question. Please try again."

StrategyFactory = Callable[
    [Mapping[str, ServiceClient], RouterConfig, QueryPreprocessor, SimilarityRetriever],
    StrategyRegistry,
]


def build_default_strategies(
    clients: Mapping[str, ServiceClient],
    config: RouterConfig,
    preprocessor: QueryPreprocessor,
    retriever: SimilarityRetriever,
) -> StrategyRegistry:
    conversational = ConversationalSynthesisStrategy(
        clients[GENERATION],
        config=config,
        preprocessor=preprocessor,
        retriever=retriever,
    )
    registry = StrategyRegistry()
    registry.register(Intent.CONVERSATIONAL, conversational)
    registry.register(
        Intent.FACT_RETRIEVAL,
        FactRetrievalStrategy(clients[EQA], conversational, config=config),
    )
    return registry


class _ServiceClient:
    """Resolves the named service at call time, so strategies can be built
    before the services are started."""

    def __init__(self, router: Router, name: str) -> None:
        self._router = router
        self._name = name

    async def request(
        self,
        message_type: str,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return await self._router.service(self._name).request(message_type, payload, timeout=timeout)


class Router:
    """Runs the query pipeline: preprocess, cache lookup, embed, retrieve,
    classify, answer, validate and cache store.

    Overlapping `process_query` calls are not serialised. They may interleave
    at each await and share the chunk list, which is acceptable for one user
    but not for multi-tenant use.
    """

    def __init__(
        self,
        config: RouterConfig | None = None,
        *,
        cache_config: CacheConfig | None = None,
        worker_factory: WorkerFactory | None = None,
        strategy_factory: StrategyFactory | None = None,
        trace_store: QueryTraceStore | None = None,
    ) -> None:
        self.config = config or RouterConfig()
        self.cache_config = cache_config or CacheConfig()
        self.trace_store = trace_store or QueryTraceStore()
        self._worker_factory = worker_factory or thread_worker_factory

        self.preprocessor = QueryPreprocessor(self.config.similarity_threshold)
        self.classifier = IntentClassifier()
        self.validator = ResponseValidator()
        self.retriever = SimilarityRetriever(self._ensure_embeddings)

        self.embedding_cache = EmbeddingCache(self.cache_config.embedding_max_size)
        self.query_cache = QueryResultCache(
            self.cache_config.query_max_size,
            ttl_seconds=self.cache_config.query_ttl_seconds,
        )
        self.embedding_cache.set_observer(self._on_cache_event)
        self.query_cache.set_observer(self._on_cache_event)

        clients = {name: _ServiceClient(self, name) for name in (EMBEDDING, GENERATION, EQA)}
        factory = strategy_factory or build_default_strategies
        self.strategies = factory(clients, self.config, self.preprocessor, self.retriever)
        self.strategies.set_observer(self._on_strategy_trace)

        self._services: dict[str, ServiceHandle] = {}
        self._chunks: list[Chunk] = []
        self._dimension: int | None = None
        self._initialized = False

    @property
    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    def service(self, name: str) -> ServiceHandle:
        handle = self._services.get(name)
        if handle is None:
            raise WorkerRuntimeError(f"{name} service is not running")
        return handle

    async def initialize(self, chunks: Sequence[Chunk]) -> None:
        """Start all services and pre-embed the knowledge chunks.

        The embedding service is started and awaited first. Generation and
        EQA then start while the chunks are embedded. Any startup failure
        terminates the services started so far and propagates.
        """
        if self._initialized or self._services:
            raise RuntimeError("Router already initialized; call cleanup() first")

        with Timer() as timer:
            try:
                embedding = self._start_service(EMBEDDING, self.config.embedding_service_path)
                await embedding.wait_until_ready()

                generation = self._start_service(GENERATION, self.config.generation_service_path)
                eqa = self._start_service(EQA, self.config.eqa_service_path)
                await _first_failure(
                    self._prepare_chunks(chunks),
                    generation.wait_until_ready(),
                    eqa.wait_until_ready(),
                )
            except BaseException as exc:
                logger.error("router_initialize_failed", error=str(exc))
                self._terminate_services()
                self._reset_state()
                raise

        self._initialized = True
        logger.info(
            "router_initialized",
            chunks=len(self._chunks),
            dimension=self._dimension,
            elapsed_ms=round(timer.elapsed_ms, 2),
        )

    async def process_query(self, question: str, options: QueryOptions | None = None) -> QueryResult:
        """Answer one question. Never raises; failures become `method="error"` results."""
        options = options or QueryOptions()
        metrics = QueryMetrics()
        cache_hit = False

        with Timer() as total:
            try:
                result, cache_hit = await self._run_pipeline(question, options, metrics, total)
            except Exception as exc:
                error = exc if isinstance(exc, ResumeQAError) else UncaughtPipelineError(str(exc))
                logger.error(
                    "query_failed",
                    error_type=type(error).__name__,
                    error=error.message,
                    exc_info=not isinstance(exc, ResumeQAError),
                )
                metrics.error = error.message
                result = None

        if result is None:
            metrics.total_ms = total.elapsed_ms
            result = QueryResult(
                answer=PROCESSING_ERROR_MESSAGE,
                confidence=0.0,
                intent=None,
                method=AnswerMethod.ERROR,
                matched_chunks=[],
                processing_time_ms=total.elapsed_ms,
                metrics=metrics,
            )

        self.trace_store.record(question, result, cache_hit=cache_hit)
        return result

    def get_status(self) -> dict[str, Any]:
        return {
            "initialized": self._initialized,
            "workers_ready": len(self._services) == 3
            and all(handle.is_ready for handle in self._services.values()),
            "service_states": {name: handle.state.value for name, handle in self._services.items()},
            "chunks_loaded": len(self._chunks),
            "pending_request_count": sum(
                handle.channel.pending_count for handle in self._services.values()
            ),
        }

    def cleanup(self) -> None:
        """Terminate every service and fail all pending requests."""
        self._terminate_services()
        self._reset_state()
        logger.info("router_cleaned_up")

    def _reset_state(self) -> None:
        self.query_cache.clear()
        self.embedding_cache.clear()
        self.embedding_cache.dimension = None
        self._chunks = []
        self._dimension = None
        self._initialized = False

    async def _run_pipeline(
        self,
        question: str,
        options: QueryOptions,
        metrics: QueryMetrics,
        total: Timer,
    ) -> tuple[QueryResult, bool]:
        if not self._initialized:
            raise WorkerRuntimeError("router is not initialized")

        with Timer() as timer:
            enhanced = self.preprocessor.preprocess(question, options.context)
        metrics.preprocessing_ms = timer.elapsed_ms

        cache_key = f"{options.style.value}:{enhanced}"
        cached = self.query_cache.get(cache_key)
        if cached is not None:
            return cached, True

        with Timer() as timer:
            query_embedding = await self._embed_text(enhanced)
        metrics.embedding_ms = timer.elapsed_ms

        with Timer() as timer:
            matched = await self.retriever.find_similar(
                query_embedding, self._chunks, self.config.max_context_chunks
            )
        metrics.retrieval_ms = timer.elapsed_ms

        intent = self.classifier.classify(question)
        outcome = await self.strategies.execute(intent, question, matched, options)
        metrics.generation_ms = outcome.elapsed_ms
        metrics.fallback_reason = outcome.fallback_reason

        answer = outcome.answer
        confidence = outcome.confidence
        kept = outcome.matched
        if outcome.method is AnswerMethod.GENERATION:
            report = self.validator.validate(answer, confidence, question, kept)
            answer, confidence = report.answer, report.confidence
            metrics.quality_flags = list(report.flags)
            metrics.quality_score = report.quality_score
            if report.fallback_triggered:
                kept = []
                metrics.fallback_reason = metrics.fallback_reason or ValidationFallback.reason
        else:
            metrics.quality_score = confidence

        metrics.total_ms = total.elapsed_now()
        result = QueryResult(
            answer=answer,
            confidence=min(1.0, max(0.0, confidence)),
            intent=intent,
            method=outcome.method,
            matched_chunks=[MatchedChunk.from_scored(item) for item in kept],
            processing_time_ms=metrics.total_ms,
            metrics=metrics,
        )
        if result.method is not AnswerMethod.ERROR:
            self.query_cache.put(cache_key, result)
        return result, False

    async def _embed_text(self, text: str) -> list[float]:
        cached = self.embedding_cache.get(text)
        if cached is not None:
            return cached
        reply = await self.service(EMBEDDING).request("generateEmbedding", {"text": text})
        vector = _as_vector(reply.get("embedding"))
        self._fix_dimension(vector)
        self.embedding_cache.put(text, vector)
        return vector

    async def _ensure_embeddings(self, chunks: list[Chunk]) -> None:
        pending = [chunk for chunk in chunks if not self._has_usable_embedding(chunk)]
        uncached: list[Chunk] = []
        for chunk in pending:
            cached = self.embedding_cache.get(chunk.text)
            if cached is not None and self._dimension is not None:
                chunk.embedding = cached
            else:
                uncached.append(chunk)
        if not uncached:
            return

        reply = await self.service(EMBEDDING).request(
            "generateBatchEmbeddings", {"texts": [chunk.text for chunk in uncached]}
        )
        embeddings = reply.get("embeddings")
        if not isinstance(embeddings, list) or len(embeddings) != len(uncached):
            raise WorkerRuntimeError("batch embedding reply does not match the request")
        for chunk, raw in zip(uncached, embeddings, strict=True):
            vector = _as_vector(raw)
            self._fix_dimension(vector)
            chunk.embedding = vector
            self.embedding_cache.put(chunk.text, vector)

    async def _prepare_chunks(self, chunks: Sequence[Chunk]) -> None:
        self._chunks = list(chunks)
        try:
            await self._ensure_embeddings(self._chunks)
            # Pre-supplied vectors are only checked once the service has fixed the dimension.
            await self._ensure_embeddings(self._chunks)
        except ResumeQAError as exc:
            logger.warning("chunk_precompute_failed", error=exc.message, chunks=len(self._chunks))

    def _has_usable_embedding(self, chunk: Chunk) -> bool:
        if chunk.embedding is None:
            return False
        return self._dimension is None or len(chunk.embedding) == self._dimension

    def _fix_dimension(self, vector: list[float]) -> None:
        if self._dimension is None:
            self._dimension = len(vector)
            self.embedding_cache.dimension = self._dimension
            return
        if len(vector) != self._dimension:
            raise WorkerRuntimeError(
                f"embedding dimension changed from {self._dimension} to {len(vector)}"
            )

    def _start_service(self, name: str, path: str) -> ServiceHandle:
        handle = ServiceHandle(
            name,
            self._worker_factory(name, path),
            request_timeout=self.config.request_timeout,
            ready_timeout=self.config.ready_timeout,
            model_load_timeout=self.config.model_load_timeout,
            on_progress=self.config.on_progress,
        )
        self._services[name] = handle
        handle.start()
        return handle

    def _terminate_services(self) -> None:
        for handle in self._services.values():
            handle.terminate()
        self._services.clear()

    def _on_cache_event(self, event: CacheEvent) -> None:
        logger.debug("cache_event", cache=event.cache, kind=event.kind, key=event.key)

    def _on_strategy_trace(self, trace: StrategyTrace) -> None:
        logger.info(
            "strategy_executed",
            intent=trace.intent.value,
            strategy=trace.strategy,
            method=trace.method.value,
            latency_ms=round(trace.latency_ms, 2),
            fallback_reason=trace.fallback_reason,
        )


async def _first_failure(*coroutines: Any) -> None:
    """Run coroutines concurrently, cancelling the rest when one fails."""
    tasks = [asyncio.ensure_future(coroutine) for coroutine in coroutines]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    errors = [task.exception() for task in done if not task.cancelled() and task.exception()]
    if errors:
        raise errors[0]


def _as_vector(raw: Any) -> list[float]:
    if not isinstance(raw, list) or not raw:
        raise WorkerRuntimeError("embedding reply is missing a vector")
    return [float(value) for value in raw]
