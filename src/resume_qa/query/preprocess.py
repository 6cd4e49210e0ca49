"""Query normalisation, expansion and adaptive similarity thresholds."""

from __future__ import annotations

import re
from collections.abc import Sequence

from resume_qa.types import ConversationTurn

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_SECTION_SPLIT = re.compile(r"[_-]")

# Term -> synonyms; only the first synonym is appended to a query.
SYNONYMS: dict[str, tuple[str, ...]] = {
    "react": ("reactjs", "jsx", "hooks", "components"),
    "javascript": ("js", "es6", "typescript"),
    "node": ("nodejs", "backend", "server"),
    "css": ("styling", "scss", "sass"),
    "database": ("db", "sql", "storage"),
    "api": ("rest", "endpoint", "service"),
    "frontend": ("ui", "client", "interface"),
    "backend": ("server", "api", "service"),
    "experience": ("work", "background", "history"),
    "skills": ("abilities", "expertise", "competencies"),
    "projects": ("work", "portfolio", "applications"),
}

QUESTION_STARTERS = (
    "what", "how", "why", "who", "where", "when", "which", "do you", "can you", "are you",
)
TECHNICAL_TERMS = ("framework", "library", "algorithm", "architecture", "implementation")

SHORT_QUERY_LENGTH = 20
SHORT_QUERY_ADJUSTMENT = -0.10
QUESTION_ADJUSTMENT = -0.05
TECHNICAL_ADJUSTMENT = 0.05


class QueryPreprocessor:
    """Normalises and expands questions before embedding."""

    def __init__(self, base_threshold: float = 0.3, *, context_turns: int = 2, max_keywords: int = 3) -> None:
        self.base_threshold = base_threshold
        self.context_turns = context_turns
        self.max_keywords = max_keywords

    def preprocess(self, question: str, recent_turns: Sequence[ConversationTurn] = ()) -> str:
        query = normalize(question)
        query = self._expand_synonyms(query)
        keywords = self._context_keywords(recent_turns)
        if keywords:
            query = f"{query} {' '.join(keywords)}"
        return query.strip()

    def adaptive_threshold(self, query: str) -> float:
        """Adjust the base threshold for query shape.

        At most one adjustment applies, checked in this order: short query,
        interrogative, technical jargon.
        """
        lowered = query.strip().lower()
        threshold = self.base_threshold
        if len(lowered) < SHORT_QUERY_LENGTH:
            threshold += SHORT_QUERY_ADJUSTMENT
        elif "?" in lowered or lowered.startswith(QUESTION_STARTERS):
            threshold += QUESTION_ADJUSTMENT
        elif any(term in lowered for term in TECHNICAL_TERMS):
            threshold += TECHNICAL_ADJUSTMENT
        return min(1.0, max(0.0, threshold))

    def _expand_synonyms(self, query: str) -> str:
        # Plain substring match, so "access" also expands "css".
        additions = [synonyms[0] for term, synonyms in SYNONYMS.items() if term in query and synonyms]
        if not additions:
            return query
        return f"{query} {' '.join(additions)}"

    def _context_keywords(self, recent_turns: Sequence[ConversationTurn]) -> list[str]:
        keywords: list[str] = []
        for turn in list(recent_turns)[-self.context_turns :]:
            for section_id in turn.matched_sections:
                for part in _SECTION_SPLIT.split(section_id.lower()):
                    if len(part) > 2 and part not in keywords:
                        keywords.append(part)
        return keywords[: self.max_keywords]


def normalize(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    without_punctuation = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", without_punctuation).strip()
