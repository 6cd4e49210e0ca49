"""Service backends hosted inside worker threads.

Each backend answers the message types of one service and declares which
lifecycle signals it emits while starting up. Backends never see asyncio; the
`ThreadWorker` that hosts them owns all message plumbing.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from resume_qa.workers.embedder import HashingEmbedder

logger = structlog.get_logger(__name__)

ProgressReporter = Callable[..., None]

_WORD = re.compile(r"[a-z0-9]+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_QUANTITY = re.compile(r"\d+(?:\.\d+)?\+?\s+[A-Za-z]+")
_STOPWORDS = frozenset(
    {
        "a", "an", "and", "any", "are", "as", "at", "be", "by", "can", "did", "do",
        "does", "for", "from", "have", "how", "in", "is", "it", "many", "me", "much",
        "my", "of", "on", "or", "tell", "that", "the", "to", "was", "were", "what",
        "when", "where", "which", "who", "with", "you", "your",
    }
)


def _content_words(text: str) -> set[str]:
    return {word for word in _WORD.findall(text.lower()) if word not in _STOPWORDS}


class ServiceBackend(ABC):
    """Request handler for one inference service."""

    ready_signal = "ready"
    progress_signal = "progress"

    def load(self, report: ProgressReporter) -> None:
        """Prepare models or resources, reporting percent complete."""
        report(100.0, "done")

    @abstractmethod
    def handle(self, message_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Answer one request. Raise to reply with ``success: false``."""


class HashingEmbeddingService(ServiceBackend):
    """Embedding service backed by `HashingEmbedder`; needs no download."""

    ready_signal = "initialized"
    progress_signal = "downloadProgress"

    def __init__(self, dimension: int = 256) -> None:
        self.embedder = HashingEmbedder(dimension)

    def load(self, report: ProgressReporter) -> None:
        report(0.0, "initiate")
        self.embedder.embed("warm up")
        report(100.0, "done")

    def handle(self, message_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        if message_type == "generateEmbedding":
            return {"embedding": self.embedder.embed(str(payload.get("text", "")))}
        if message_type == "generateBatchEmbeddings":
            texts = [str(text) for text in payload.get("texts", [])]
            return {"embeddings": self.embedder.embed_many(texts)}
        raise ValueError(f"Unsupported message type: {message_type}")


class ExtractiveQAService(ServiceBackend):
    """Lexical extractive question answering.

    The answer is the context sentence sharing the most content words with the
    question, narrowed to a number phrase ("5 years") for quantity questions.
    Confidence is the fraction of question content words found in that
    sentence.
    """

    ready_signal = "initialized"
    progress_signal = "downloadProgress"

    def handle(self, message_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        if message_type != "extractAnswer":
            raise ValueError(f"Unsupported message type: {message_type}")
        return self.extract(str(payload.get("question", "")), str(payload.get("context", "")))

    def extract(self, question: str, context: str) -> dict[str, Any]:
        question_words = _content_words(question)
        empty = {"answer": "", "confidence": 0.0, "startIndex": -1, "endIndex": -1}
        if not question_words or not context.strip():
            return empty

        best_sentence = ""
        best_score = 0.0
        for sentence in _SENTENCE_SPLIT.split(context.strip()):
            overlap = len(question_words & _content_words(sentence))
            score = overlap / len(question_words)
            if score > best_score:
                best_sentence, best_score = sentence.strip(), score

        if not best_sentence:
            return empty

        answer = best_sentence
        lowered = question.lower()
        if lowered.startswith(("how many", "how much", "how long")):
            quantity = _QUANTITY.search(best_sentence)
            if quantity is not None:
                answer = quantity.group(0)

        start = context.find(answer)
        return {
            "answer": answer,
            "confidence": round(best_score, 4),
            "startIndex": start,
            "endIndex": start + len(answer) if start >= 0 else -1,
        }


class ChatGenerationService(ServiceBackend):
    """Text generation through a LangChain chat model.

    Uses `langchain_openai.ChatOpenAI` when ``OPENAI_API_KEY`` is set. Without
    a model it composes a first-person answer from the prompt's context lines,
    which keeps local runs and tests deterministic.
    """

    def __init__(self, llm: Any | None = None) -> None:
        self.llm = llm

    def load(self, report: ProgressReporter) -> None:
        report(0.0, "initiate")
        if self.llm is None and os.getenv("OPENAI_API_KEY"):
            from langchain_openai import ChatOpenAI

            self.llm = ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"))
        logger.info("generation_backend_loaded", mode="llm" if self.llm is not None else "composer")
        report(100.0, "done")

    def handle(self, message_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        if message_type != "generate":
            raise ValueError(f"Unsupported message type: {message_type}")
        prompt = str(payload.get("prompt", ""))
        max_tokens = int(payload.get("maxTokens", 150))
        temperature = float(payload.get("temperature", 0.3))

        if self.llm is None:
            return {"text": compose_answer(prompt, max_tokens)}

        message = self.llm.bind(max_tokens=max_tokens, temperature=temperature).invoke(prompt)
        content = getattr(message, "content", message)
        return {"text": str(content).strip()}


def compose_answer(prompt: str, max_words: int) -> str:
    """Build a first-person answer from the ``Context:`` lines of a prompt."""
    context_lines: list[str] = []
    question = ""
    in_context = False
    for raw_line in prompt.splitlines():
        line = raw_line.strip()
        if line.endswith("Context:"):
            in_context = True
            continue
        if line.startswith("Question:"):
            question = line.removeprefix("Question:").strip()
            in_context = False
            continue
        if in_context:
            if line.startswith("- "):
                context_lines.append(line[2:].strip())
            elif line:
                in_context = False

    if not context_lines:
        return "I don't have details on that in my background yet."

    question_words = _content_words(question)
    ranked = sorted(
        context_lines,
        key=lambda text: len(question_words & _content_words(text)),
        reverse=True,
    )
    lead = ranked[0]
    if not re.match(r"^I\b", lead):
        lead = f"I can share this from my background: {lead[0].lower()}{lead[1:]}"
    text = " ".join([lead, *ranked[1:2]])

    words = text.split()
    if len(words) > max_words:
        text = " ".join(words[:max_words]).rstrip(",;:") + "..."
    return text
