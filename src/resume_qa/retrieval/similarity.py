"""Cosine-similarity retrieval over in-memory chunks."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from math import sqrt

from resume_qa.types import Chunk, ScoredChunk

EnsureEmbeddings = Callable[[list[Chunk]], Awaitable[None]]


class SimilarityRetriever:
    """Ranks chunks against a query embedding.

    Chunks without a usable embedding are passed to `ensure_embeddings`
    before ranking. Any chunk still lacking one afterwards is skipped.
    """

    def __init__(self, ensure_embeddings: EnsureEmbeddings | None = None) -> None:
        self._ensure_embeddings = ensure_embeddings

    async def find_similar(
        self,
        query_embedding: list[float],
        chunks: Sequence[Chunk],
        k: int,
    ) -> list[ScoredChunk]:
        if not query_embedding or k <= 0:
            return []
        dimension = len(query_embedding)

        missing = [chunk for chunk in chunks if not _usable(chunk, dimension)]
        if missing and self._ensure_embeddings is not None:
            await self._ensure_embeddings(missing)

        ranked = sorted(
            (
                ScoredChunk(chunk=chunk, similarity=cosine_similarity(query_embedding, chunk.embedding))
                for chunk in chunks
                if chunk.embedding is not None and _usable(chunk, dimension)
            ),
            key=lambda item: item.similarity,
            reverse=True,
        )
        return ranked[:k]

    def apply_threshold(
        self,
        results: Sequence[ScoredChunk],
        threshold: float,
        max_results: int | None = None,
    ) -> list[ScoredChunk]:
        """Keep results at or above the clamped threshold, preserving order."""
        bounded = min(1.0, max(0.0, threshold))
        kept = [item for item in results if item.similarity >= bounded]
        if max_results is not None:
            kept = kept[: max(0, max_results)]
        return kept


def _usable(chunk: Chunk, dimension: int) -> bool:
    return chunk.embedding is not None and len(chunk.embedding) == dimension


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
