"""Common interface for answering strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Protocol

from resume_qa.types import QueryOptions, ScoredChunk, StrategyOutcome


class ServiceClient(Protocol):
    """Anything that can send a correlated request to a service."""

    async def request(
        self,
        message_type: str,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send one request and wait for its reply fields."""


class AnswerStrategy(ABC):
    """Produces an answer from the question and its retrieved chunks.

    Implementations recover from service errors themselves and always return
    an outcome.
    """

    name = "strategy"

    @abstractmethod
    async def answer(
        self,
        question: str,
        matched: Sequence[ScoredChunk],
        options: QueryOptions,
    ) -> StrategyOutcome:
        """Answer one question."""
