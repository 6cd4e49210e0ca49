"""Knowledge base loading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from resume_qa.types import Chunk, ResponseStyle

logger = structlog.get_logger(__name__)


class StyledResponses(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hr: str | None = None
    developer: str | None = None
    friend: str | None = None

    def as_dict(self) -> dict[str, str]:
        return {key: value for key, value in self.model_dump().items() if value}


class ChunkRecord(BaseModel):
    """One knowledge chunk as stored on disk."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    embedding: list[float] | None = None
    category: str = "general"
    source: str | None = None
    keywords: list[str] = Field(default_factory=list)
    responses: StyledResponses | None = None

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("text must not be blank")
        return stripped

    def to_chunk(self, default_source: str) -> Chunk:
        metadata: dict[str, Any] = {
            "category": self.category,
            "source": self.source or default_source,
        }
        if self.keywords:
            metadata["keywords"] = list(self.keywords)
        if self.responses is not None:
            metadata["responses"] = self.responses.as_dict()
        return Chunk(
            id=self.id,
            text=self.text,
            embedding=list(self.embedding) if self.embedding is not None else None,
            metadata=metadata,
        )


class CVSection(BaseModel):
    """A section of a résumé document grouped by category."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    responses: StyledResponses
    details: dict[str, Any] = Field(default_factory=dict)

    def to_record(self, category: str) -> ChunkRecord:
        responses = self.responses.as_dict()
        text = responses.get(ResponseStyle.DEVELOPER.value) or next(iter(responses.values()), "")
        return ChunkRecord(
            id=self.id,
            text=text,
            category=category,
            keywords=self.keywords,
            responses=self.responses,
        )


class CVDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sections: dict[str, dict[str, CVSection]]

    def records(self) -> list[ChunkRecord]:
        return [
            section.to_record(category)
            for category, group in self.sections.items()
            for section in group.values()
        ]


def parse_knowledge(data: Any, *, source: str = "inline") -> list[Chunk]:
    """Validate a JSON array of chunk records, or a résumé document with
    ``sections``, and convert it to chunks.

    Raises:
        pydantic.ValidationError: when a record is malformed.
        ValueError: when two chunks share an id.
    """
    if isinstance(data, dict) and "sections" in data:
        records = CVDocument.model_validate(data).records()
    elif isinstance(data, list):
        records = [ChunkRecord.model_validate(item) for item in data]
    else:
        raise ValueError("knowledge must be a list of chunks or an object with 'sections'")

    seen: set[str] = set()
    chunks: list[Chunk] = []
    for record in records:
        if record.id in seen:
            raise ValueError(f"Duplicate chunk id: {record.id}")
        seen.add(record.id)
        chunks.append(record.to_chunk(source))
    return chunks


def load_knowledge(path: str | Path) -> list[Chunk]:
    file_path = Path(path)
    data = json.loads(file_path.read_text(encoding="utf-8"))
    chunks = parse_knowledge(data, source=file_path.name)
    logger.info("knowledge_loaded", path=str(file_path), chunks=len(chunks))
    return chunks
