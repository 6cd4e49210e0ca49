"""Quality gate for generated answers."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

T = TypeVar("T")

CLARIFICATION_MESSAGE = (
    "I'd be happy to help you with that! Could you be a bit more specific about "
    "what you'd like to know? I can share details about my experience, skills, "
    "or projects."
)

INVALID_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"serdh?ii",
        r"serlindo",
        r"serdoubust",
        r"serdondogs",
        r"webpack",
        r"pylons",
        r"ejs",
        r"\d+\s+guys",
        r"work out of here",
        r"ain't no joke",
        r"made my life so much easier",
    )
)

_ANSWER_PREFIX = re.compile(r"^(Response:|Answer:)\s*", re.IGNORECASE)
_BLANK_LINES = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")
_EXPECTED_LEAD = re.compile(r"^(I|Yes|No)", re.IGNORECASE)

SHORT_RESPONSE_LENGTH = 20
SHORT_RESPONSE_PENALTY = 0.10
LOW_RELEVANCE_THRESHOLD = 0.5
LOW_RELEVANCE_PENALTY = 0.15
MIN_CONFIDENCE = 0.3
FALLBACK_CONFIDENCE = 0.2
MIN_GENERATED_LENGTH = 10


@dataclass(slots=True)
class ValidationReport:
    answer: str
    confidence: float
    matched_count: int
    quality_score: float
    flags: list[str] = field(default_factory=list)

    @property
    def fallback_triggered(self) -> bool:
        return "fallback_triggered" in self.flags


class ResponseValidator:
    """Penalises short or off-topic answers and swaps weak ones for a clarification."""

    def validate(self, answer: str, confidence: float, question: str, matched: Sequence[T]) -> ValidationReport:
        flags: list[str] = []
        adjusted = confidence
        matched_count = len(matched)

        if len(answer) < SHORT_RESPONSE_LENGTH:
            adjusted = max(0.0, adjusted - SHORT_RESPONSE_PENALTY)
            flags.append("short_response")

        if query_relevance(answer, question) < LOW_RELEVANCE_THRESHOLD:
            adjusted = max(0.0, adjusted - LOW_RELEVANCE_PENALTY)
            flags.append("low_relevance")

        if adjusted < MIN_CONFIDENCE:
            answer = CLARIFICATION_MESSAGE
            adjusted = FALLBACK_CONFIDENCE
            matched_count = 0
            flags.append("fallback_triggered")

        return ValidationReport(
            answer=answer,
            confidence=adjusted,
            matched_count=matched_count,
            quality_score=quality_score(answer, adjusted, matched_count, len(flags)),
            flags=flags,
        )


def query_relevance(answer: str, question: str) -> float:
    """Fraction of question words (longer than 2 chars) echoed by the answer."""
    question_words = [word for word in question.lower().split() if len(word) > 2]
    if not answer or not question_words:
        return 0.0
    answer_words = answer.lower().split()
    matches = sum(
        1
        for word in question_words
        if any(word in answer_word or answer_word in word for answer_word in answer_words)
    )
    return matches / len(question_words)


def quality_score(answer: str, confidence: float, matched_count: int, flag_count: int) -> float:
    score = confidence * 0.6
    score += min(0.2, len(answer) / 500)
    score += min(0.1, matched_count * 0.03)
    score -= flag_count * 0.05
    return min(1.0, max(0.0, score))


def clean_generated_text(text: str | None) -> str | None:
    """Normalise raw model output, or return None when it should not be shown."""
    if not text:
        return None
    cleaned = _ANSWER_PREFIX.sub("", text.strip())
    cleaned = _BLANK_LINES.sub("\n", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()

    if any(pattern.search(cleaned) for pattern in INVALID_PATTERNS):
        return None
    if len(cleaned) < MIN_GENERATED_LENGTH:
        return None
    if not _EXPECTED_LEAD.match(cleaned):
        return None
    return cleaned
