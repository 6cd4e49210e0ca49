import pytest

from resume_qa.generation.prompts import build_prompt
from resume_qa.retrieval.similarity import cosine_similarity
from resume_qa.workers.embedder import HashingEmbedder
from resume_qa.workers.services import (
    ChatGenerationService,
    ExtractiveQAService,
    HashingEmbeddingService,
    compose_answer,
)


def test_hashing_embedder_is_deterministic_and_normalised() -> None:
    embedder = HashingEmbedder(dimension=64)

    first = embedder.embed("React experience")
    second = embedder.embed("react   EXPERIENCE!")

    assert first == second
    assert len(first) == 64
    assert sum(value * value for value in first) == pytest.approx(1.0)
    assert embedder.embed("") == [0.0] * 64


def test_related_spellings_are_similar() -> None:
    embedder = HashingEmbedder()

    related = cosine_similarity(embedder.embed("react"), embedder.embed("reactjs"))
    unrelated = cosine_similarity(embedder.embed("react"), embedder.embed("postgres"))

    assert related > unrelated


def test_embedding_service_handles_single_and_batch() -> None:
    service = HashingEmbeddingService(dimension=32)

    single = service.handle("generateEmbedding", {"text": "hello"})
    batch = service.handle("generateBatchEmbeddings", {"texts": ["hello", "world"]})

    assert len(single["embedding"]) == 32
    assert batch["embeddings"][0] == single["embedding"]
    with pytest.raises(ValueError):
        service.handle("generate", {})


def test_extractive_qa_narrows_quantity_answers() -> None:
    context = "Lives in Kyiv. Has 5 years of React experience."

    reply = ExtractiveQAService().extract("How many years of React experience?", context)

    assert reply["answer"] == "5 years"
    assert reply["confidence"] == 1.0
    assert context[reply["startIndex"] : reply["endIndex"]] == "5 years"


def test_extractive_qa_without_overlap_is_empty() -> None:
    reply = ExtractiveQAService().extract("Favourite colour?", "Has 5 years of React experience.")

    assert reply["answer"] == ""
    assert reply["confidence"] == 0.0


def test_generation_service_composes_first_person_answer(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = ChatGenerationService()
    progress: list[float] = []
    service.load(lambda percent, status="": progress.append(percent))

    prompt = build_prompt(
        "Tell me about your React work",
        "- Built design systems in React.\n- Enjoys hiking.",
    )
    reply = service.handle("generate", {"prompt": prompt, "maxTokens": 50, "temperature": 0.3})

    assert progress == [0.0, 100.0]
    assert reply["text"].startswith("I ")
    assert "design systems in React" in reply["text"]


class _FakeMessage:
    def __init__(self, content: str) -> None:
        self.content = content


class _FakeLLM:
    def __init__(self) -> None:
        self.bound: dict = {}
        self.prompts: list[str] = []

    def bind(self, **kwargs):
        self.bound = kwargs
        return self

    def invoke(self, prompt: str) -> _FakeMessage:
        self.prompts.append(prompt)
        return _FakeMessage("  I build React apps.  ")


def test_generation_service_uses_bound_chat_model() -> None:
    llm = _FakeLLM()
    service = ChatGenerationService(llm=llm)

    reply = service.handle("generate", {"prompt": "Question: hi", "maxTokens": 80, "temperature": 0.1})

    assert reply == {"text": "I build React apps."}
    assert llm.bound == {"max_tokens": 80, "temperature": 0.1}
    assert llm.prompts == ["Question: hi"]


def test_compose_answer_truncates_to_word_limit() -> None:
    prompt = "Context:\n- " + " ".join(["word"] * 40) + "\n\nQuestion: words?"

    text = compose_answer(prompt, max_words=10)

    assert len(text.split()) == 10
    assert text.endswith("...")
