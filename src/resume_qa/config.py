"""Configuration models for the question-answering router."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

ProgressCallback = Callable[[str, float], None]

DEFAULT_EMBEDDING_SERVICE = "resume_qa.workers.services:HashingEmbeddingService"
DEFAULT_GENERATION_SERVICE = "resume_qa.workers.services:ChatGenerationService"
DEFAULT_EQA_SERVICE = "resume_qa.workers.services:ExtractiveQAService"


class RouterConfig(BaseModel):
    """Configures worker locations, retrieval breadth, gates and timeouts.

    Service paths use the ``"module:attribute"`` form and point at a zero-arg
    factory for a `ServiceBackend`. Timeouts are in seconds.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    embedding_service_path: str = DEFAULT_EMBEDDING_SERVICE
    generation_service_path: str = DEFAULT_GENERATION_SERVICE
    eqa_service_path: str = DEFAULT_EQA_SERVICE

    max_context_chunks: int = Field(default=5, ge=1)
    similarity_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    eqa_confidence_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    request_timeout: float = Field(default=5.0, gt=0.0)
    ready_timeout: float = Field(default=30.0, gt=0.0)
    model_load_timeout: float = Field(default=300.0, gt=0.0)

    generation_max_tokens: int = Field(default=150, ge=1)
    generation_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    context_sections: int = Field(default=2, ge=1)
    persona_name: str = Field(default="the candidate", min_length=1)
    filter_generated_text: bool = False

    on_progress: ProgressCallback | None = None


class CacheConfig(BaseModel):
    """Configures capacity and expiry of the embedding and query caches."""

    model_config = ConfigDict(frozen=True)

    embedding_max_size: int = Field(default=200, ge=1)
    query_max_size: int = Field(default=50, ge=1)
    query_ttl_seconds: float = Field(default=300.0, gt=0.0)
