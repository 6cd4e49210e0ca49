"""Strategy registry keyed by intent."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from time import perf_counter

from resume_qa.strategies.base import AnswerStrategy
from resume_qa.types import Intent, QueryOptions, ScoredChunk, StrategyOutcome, StrategyTrace


class StrategyRegistry:
    """Maps each intent to the strategy that answers it.

    Strategies are registered once, when the router is built.
    """

    def __init__(self) -> None:
        self._strategies: dict[Intent, AnswerStrategy] = {}
        self._observer: Callable[[StrategyTrace], None] | None = None

    def register(self, intent: Intent, strategy: AnswerStrategy) -> None:
        if intent in self._strategies:
            raise ValueError(f"Strategy already registered for intent: {intent.value}")
        self._strategies[intent] = strategy

    def set_observer(self, observer: Callable[[StrategyTrace], None] | None) -> None:
        """Set an optional callback invoked after each strategy execution."""
        self._observer = observer

    def get(self, intent: Intent) -> AnswerStrategy:
        strategy = self._strategies.get(intent)
        if strategy is None:
            raise KeyError(f"No strategy for intent: {intent.value}")
        return strategy

    def intents(self) -> list[Intent]:
        return list(self._strategies)

    async def execute(
        self,
        intent: Intent,
        question: str,
        matched: Sequence[ScoredChunk],
        options: QueryOptions,
    ) -> StrategyOutcome:
        strategy = self.get(intent)
        start = perf_counter()
        outcome = await strategy.answer(question, matched, options)
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                StrategyTrace(
                    intent=intent,
                    strategy=strategy.name,
                    method=outcome.method,
                    latency_ms=latency_ms,
                    fallback_reason=outcome.fallback_reason,
                )
            )
        return outcome
