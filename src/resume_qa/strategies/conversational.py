"""Free-text synthesis through the generation service."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from resume_qa.config import RouterConfig
from resume_qa.errors import RequestTimeout, WorkerRuntimeError
from resume_qa.generation.prompts import build_context, build_prompt
from resume_qa.generation.validator import CLARIFICATION_MESSAGE, clean_generated_text
from resume_qa.obs.tracing import Timer
from resume_qa.query.preprocess import QueryPreprocessor
from resume_qa.retrieval.similarity import SimilarityRetriever
from resume_qa.strategies.base import AnswerStrategy, ServiceClient
from resume_qa.types import AnswerMethod, Intent, QueryOptions, ScoredChunk, StrategyOutcome

logger = structlog.get_logger(__name__)

NO_INFORMATION_MESSAGE = "I don't have enough information to answer that question."
GENERATION_ERROR_MESSAGE = "I encountered an error generating a response. Please try again."
DEFAULT_GENERATION_CONFIDENCE = 0.8
FILTERED_CONFIDENCE = 0.2
MAX_ANSWER_WORDS = 100


class ConversationalSynthesisStrategy(AnswerStrategy):
    name = "conversational_synthesis"

    def __init__(
        self,
        client: ServiceClient,
        *,
        config: RouterConfig | None = None,
        preprocessor: QueryPreprocessor | None = None,
        retriever: SimilarityRetriever | None = None,
    ) -> None:
        self.client = client
        self.config = config or RouterConfig()
        self.preprocessor = preprocessor or QueryPreprocessor(self.config.similarity_threshold)
        self.retriever = retriever or SimilarityRetriever()

    async def answer(
        self,
        question: str,
        matched: Sequence[ScoredChunk],
        options: QueryOptions,
    ) -> StrategyOutcome:
        threshold = self.preprocessor.adaptive_threshold(question)
        filtered = self.retriever.apply_threshold(matched, threshold, self.config.max_context_chunks)
        if not filtered:
            logger.info("no_chunks_above_threshold", threshold=threshold, candidates=len(matched))
            return StrategyOutcome(
                answer=NO_INFORMATION_MESSAGE,
                confidence=0.0,
                intent=Intent.CONVERSATIONAL,
                method=AnswerMethod.FALLBACK,
                matched=[],
                fallback_reason="no_relevant_chunks",
            )

        prompt = build_prompt(
            question,
            build_context(filtered, options.style, self.config.context_sections),
            style=options.style,
            persona=self.config.persona_name,
            history=options.context,
            max_words=MAX_ANSWER_WORDS,
        )
        payload = {
            "prompt": prompt,
            "maxTokens": self.config.generation_max_tokens,
            "temperature": self.config.generation_temperature,
        }

        timer = Timer()
        try:
            with timer:
                reply = await self.client.request("generate", payload)
        except (RequestTimeout, WorkerRuntimeError) as exc:
            logger.warning("generation_failed", error=exc.message)
            return StrategyOutcome(
                answer=GENERATION_ERROR_MESSAGE,
                confidence=0.0,
                intent=Intent.CONVERSATIONAL,
                method=AnswerMethod.ERROR,
                matched=filtered,
                elapsed_ms=timer.elapsed_ms,
                fallback_reason="generation_failed",
            )

        text = str(reply.get("text") or "").strip()
        if self.config.filter_generated_text:
            cleaned = clean_generated_text(text)
            if cleaned is None:
                logger.info("generated_text_rejected", length=len(text))
                return StrategyOutcome(
                    answer=CLARIFICATION_MESSAGE,
                    confidence=FILTERED_CONFIDENCE,
                    intent=Intent.CONVERSATIONAL,
                    method=AnswerMethod.FALLBACK,
                    matched=[],
                    elapsed_ms=timer.elapsed_ms,
                    fallback_reason="generated_text_rejected",
                )
            text = cleaned

        confidence = reply.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            confidence = DEFAULT_GENERATION_CONFIDENCE

        return StrategyOutcome(
            answer=text,
            confidence=min(1.0, max(0.0, float(confidence))),
            intent=Intent.CONVERSATIONAL,
            method=AnswerMethod.GENERATION,
            matched=filtered,
            elapsed_ms=timer.elapsed_ms,
        )
