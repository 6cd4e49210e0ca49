import pytest

from resume_qa.config import RouterConfig
from resume_qa.errors import WorkerInitFailure, WorkerRuntimeError
from resume_qa.ingest.knowledge import parse_knowledge
from resume_qa.router import Router
from resume_qa.types import AnswerMethod, Chunk, Intent
from resume_qa.workers.lifecycle import ServiceHandle, WorkerState
from resume_qa.workers.services import HashingEmbeddingService
from resume_qa.workers.transport import ThreadWorker, load_backend_factory

KNOWLEDGE = [
    {"id": "experience_react", "text": "Has 5 years of React experience.", "category": "experience"},
    {
        "id": "experience_node",
        "text": "Built Node.js REST APIs for three years.",
        "category": "experience",
    },
    {"id": "education_degree", "text": "Holds a Master's degree in Computer Science.", "category": "education"},
]


def _chunks() -> list[Chunk]:
    return parse_knowledge(KNOWLEDGE)


@pytest.mark.asyncio
async def test_bundled_services_answer_fact_question(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    progress: list[tuple[str, float]] = []
    router = Router(RouterConfig(on_progress=lambda name, percent: progress.append((name, percent))))

    await router.initialize(_chunks())
    try:
        result = await router.process_query("How many years of React experience?")
        status = router.get_status()
    finally:
        router.cleanup()

    assert result.intent is Intent.FACT_RETRIEVAL
    assert result.method is AnswerMethod.EQA
    assert result.answer == "5 years"
    assert status["workers_ready"] is True
    assert status["service_states"] == {
        "embedding": "ready_for_queries",
        "generation": "ready_for_queries",
        "eqa": "ready_for_queries",
    }
    assert ("embedding", 100.0) in progress


@pytest.mark.asyncio
async def test_bundled_services_answer_conversational_question(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    router = Router()

    await router.initialize(_chunks())
    try:
        result = await router.process_query("Tell me about your React and Node work")
    finally:
        router.cleanup()

    assert result.intent is Intent.CONVERSATIONAL
    assert result.method in (AnswerMethod.GENERATION, AnswerMethod.FALLBACK)
    assert result.answer


@pytest.mark.asyncio
async def test_thread_worker_reports_failed_backend() -> None:
    def _broken():
        raise RuntimeError("weights missing")

    handle = ServiceHandle("eqa", ThreadWorker("eqa", _broken), ready_timeout=5.0)
    handle.start()

    with pytest.raises(WorkerInitFailure, match="weights missing"):
        await handle.wait_until_ready()
    handle.terminate()
    assert handle.state is WorkerState.TERMINATED


@pytest.mark.asyncio
async def test_thread_worker_replies_with_failure_for_unknown_type() -> None:
    handle = ServiceHandle("embedding", ThreadWorker("embedding", HashingEmbeddingService), ready_timeout=5.0)
    handle.start()
    await handle.wait_until_ready()

    try:
        reply = await handle.request("generateEmbedding", {"text": "React"})
        with pytest.raises(WorkerRuntimeError, match="Unsupported message type"):
            await handle.request("extractAnswer", {})
    finally:
        handle.terminate()

    assert len(reply["embedding"]) == 256


def test_backend_paths_are_resolved() -> None:
    factory = load_backend_factory("resume_qa.workers.services:HashingEmbeddingService")

    assert factory is HashingEmbeddingService
    with pytest.raises(ValueError):
        load_backend_factory("resume_qa.workers.services")
    with pytest.raises(ValueError):
        load_backend_factory("resume_qa.workers.services:missing")
