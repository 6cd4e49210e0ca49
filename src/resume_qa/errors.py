"""Error taxonomy for worker orchestration and query routing.

Startup errors (`WorkerInitTimeout`, `WorkerInitFailure`) are fatal and
propagate out of `Router.initialize`. Every other error is recovered by the
strategy that triggered it and turned into a degraded `QueryResult`.
"""

from __future__ import annotations


class ResumeQAError(Exception):
    """Base class for errors raised by this package."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class WorkerInitTimeout(ResumeQAError):
    """A service did not signal readiness before its startup deadline."""


class WorkerInitFailure(ResumeQAError):
    """A service reported a failed startup."""


class RequestTimeout(ResumeQAError):
    """No reply arrived for a correlated request within its timeout."""


class WorkerRuntimeError(ResumeQAError):
    """A service replied with ``success: false`` or could not be reached."""


class ChannelClosed(WorkerRuntimeError):
    """The request channel was closed while the request was pending."""


class EQAFallback(ResumeQAError):
    """An extractive answer failed the acceptance gate."""

    reason = "eqa_rejected"


class EmptyAnswer(EQAFallback):
    reason = "empty_answer"


class AnswerTooShort(EQAFallback):
    reason = "answer_too_short"


class LowConfidence(EQAFallback):
    reason = "low_confidence"


class ValidationFallback(ResumeQAError):
    """A generated answer was replaced by the clarification message."""

    reason = "validation_fallback"


class UncaughtPipelineError(ResumeQAError):
    """Wraps an unanticipated failure inside `Router.process_query`."""
