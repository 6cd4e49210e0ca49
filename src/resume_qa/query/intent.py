"""Lexical intent classification."""

from __future__ import annotations

from resume_qa.types import Intent

FACT_PREFIXES = (
    "how many",
    "how much",
    "what is",
    "what's",
    "what are",
    "when did",
    "when was",
    "where is",
    "where did",
    "where can",
    "who is",
    "which",
)

FACT_KEYWORDS = (
    "email",
    "contact",
    "phone",
    "linkedin",
    "github",
    "years",
    "experience",
    "education",
    "degree",
    "university",
    "college",
    "certification",
    "location",
    "address",
    "website",
    "portfolio",
)


class IntentClassifier:
    """Routes short factual lookups to extraction and the rest to generation."""

    def classify(self, query: str) -> Intent:
        lowered = query.strip().lower()
        if not lowered:
            return Intent.CONVERSATIONAL
        if lowered.startswith(FACT_PREFIXES):
            return Intent.FACT_RETRIEVAL
        if any(keyword in lowered for keyword in FACT_KEYWORDS):
            return Intent.FACT_RETRIEVAL
        return Intent.CONVERSATIONAL
