"""Direct fact extraction with a conversational fallback."""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any

import structlog

from resume_qa.config import RouterConfig
from resume_qa.errors import (
    AnswerTooShort,
    EmptyAnswer,
    EQAFallback,
    LowConfidence,
    RequestTimeout,
    WorkerRuntimeError,
)
from resume_qa.obs.tracing import Timer
from resume_qa.strategies.base import AnswerStrategy, ServiceClient
from resume_qa.types import AnswerMethod, Intent, QueryOptions, ScoredChunk, StrategyOutcome

logger = structlog.get_logger(__name__)

MIN_ANSWER_LENGTH = 2


class FactRetrievalStrategy(AnswerStrategy):
    """Asks the EQA service for a span and accepts it only past a confidence gate.

    A rejected or failed extraction is handed once to `fallback`; nothing is
    retried.
    """

    name = "fact_retrieval"

    def __init__(
        self,
        client: ServiceClient,
        fallback: AnswerStrategy,
        *,
        config: RouterConfig | None = None,
    ) -> None:
        self.client = client
        self.fallback = fallback
        self.config = config or RouterConfig()

    async def answer(
        self,
        question: str,
        matched: Sequence[ScoredChunk],
        options: QueryOptions,
    ) -> StrategyOutcome:
        context = " ".join(item.chunk.text for item in matched)
        timer = Timer()
        try:
            if not context.strip():
                raise EmptyAnswer("no context to extract from")
            with timer:
                reply = await self.client.request(
                    "extractAnswer", {"question": question, "context": context}
                )
            answer, confidence = self._accept(reply)
        except EQAFallback as exc:
            reason = exc.reason
            logger.info("eqa_answer_rejected", reason=reason, detail=exc.message)
        except (RequestTimeout, WorkerRuntimeError) as exc:
            reason = "eqa_unavailable"
            logger.warning("eqa_request_failed", error=exc.message)
        else:
            return StrategyOutcome(
                answer=answer,
                confidence=confidence,
                intent=Intent.FACT_RETRIEVAL,
                method=AnswerMethod.EQA,
                matched=list(matched),
                elapsed_ms=timer.elapsed_ms,
            )

        outcome = await self.fallback.answer(question, matched, options)
        return dataclasses.replace(
            outcome,
            intent=Intent.FACT_RETRIEVAL,
            elapsed_ms=outcome.elapsed_ms + timer.elapsed_ms,
            fallback_reason=reason,
        )

    def _accept(self, reply: dict[str, Any]) -> tuple[str, float]:
        answer = reply.get("answer")
        answer = answer if isinstance(answer, str) else ""
        confidence = reply.get("confidence")
        confidence = float(confidence) if isinstance(confidence, (int, float)) else 0.0

        if not answer.strip():
            raise EmptyAnswer("extractive answer is empty")
        if len(answer.strip()) < MIN_ANSWER_LENGTH:
            raise AnswerTooShort(f"extractive answer too short: {answer!r}")
        if confidence < self.config.eqa_confidence_threshold:
            raise LowConfidence(
                f"confidence {confidence:.2f} below {self.config.eqa_confidence_threshold:.2f}"
            )
        return answer, confidence
