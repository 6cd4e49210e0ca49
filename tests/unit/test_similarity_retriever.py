import pytest

from resume_qa.retrieval.similarity import SimilarityRetriever, cosine_similarity
from resume_qa.types import Chunk, ScoredChunk


def _chunk(chunk_id: str, embedding: list[float] | None) -> Chunk:
    return Chunk(id=chunk_id, text=f"text for {chunk_id}", embedding=embedding)


def test_cosine_similarity_edge_cases() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


@pytest.mark.asyncio
async def test_find_similar_ranks_and_truncates() -> None:
    retriever = SimilarityRetriever()
    chunks = [
        _chunk("far", [0.0, 1.0]),
        _chunk("near", [1.0, 0.1]),
        _chunk("middle", [1.0, 1.0]),
    ]

    results = await retriever.find_similar([1.0, 0.0], chunks, k=2)

    assert [item.chunk.id for item in results] == ["near", "middle"]
    assert results[0].similarity > results[1].similarity


@pytest.mark.asyncio
async def test_missing_and_mismatched_embeddings_are_filled_first() -> None:
    seen: list[str] = []

    async def _ensure(chunks: list[Chunk]) -> None:
        for chunk in chunks:
            seen.append(chunk.id)
            chunk.embedding = [1.0, 0.0]

    retriever = SimilarityRetriever(_ensure)
    chunks = [_chunk("ready", [0.5, 0.5]), _chunk("missing", None), _chunk("stale", [1.0, 0.0, 0.0])]

    results = await retriever.find_similar([1.0, 0.0], chunks, k=5)

    assert seen == ["missing", "stale"]
    assert {item.chunk.id for item in results} == {"ready", "missing", "stale"}


@pytest.mark.asyncio
async def test_chunks_still_without_embedding_are_skipped() -> None:
    retriever = SimilarityRetriever()

    results = await retriever.find_similar([1.0, 0.0], [_chunk("missing", None)], k=3)

    assert results == []


def test_apply_threshold_keeps_order_and_caps() -> None:
    retriever = SimilarityRetriever()
    results = [
        ScoredChunk(_chunk("a", [1.0]), 0.9),
        ScoredChunk(_chunk("b", [1.0]), 0.3),
        ScoredChunk(_chunk("c", [1.0]), 0.29),
        ScoredChunk(_chunk("d", [1.0]), 0.5),
    ]

    assert [item.chunk.id for item in retriever.apply_threshold(results, 0.3)] == ["a", "b", "d"]
    assert [item.chunk.id for item in retriever.apply_threshold(results, 0.3, 2)] == ["a", "b"]
    assert len(retriever.apply_threshold(results, -1.0)) == 4
    assert retriever.apply_threshold(results, 5.0) == []
