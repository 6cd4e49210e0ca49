import json

from fastapi.testclient import TestClient

KNOWLEDGE = [
    {"id": "experience_react", "text": "Has 5 years of React experience.", "category": "experience"},
    {"id": "contact_email", "text": "Reach me by email at hello@example.com.", "category": "contact"},
]


def test_api_query_health_traces_and_metrics(tmp_path, monkeypatch) -> None:
    knowledge = tmp_path / "knowledge.json"
    knowledge.write_text(json.dumps(KNOWLEDGE), encoding="utf-8")
    monkeypatch.setenv("RESUME_QA_KNOWLEDGE_PATH", str(knowledge))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    # Import after environment setup so the lifespan reads the temporary knowledge file.
    from resume_qa.api.main import app

    with TestClient(app) as client:
        health_resp = client.get("/health")
        assert health_resp.status_code == 200
        assert health_resp.json()["status"] == "ok"
        assert health_resp.json()["chunks_loaded"] == 2

        query_resp = client.post("/query", json={"question": "How many years of React experience?"})
        assert query_resp.status_code == 200
        payload = query_resp.json()
        assert payload["method"] == "eqa"
        assert payload["intent"] == "fact_retrieval"
        assert payload["answer"] == "5 years"

        styled_resp = client.post(
            "/query",
            json={
                "question": "Tell me about your frontend work",
                "style": "friend",
                "context": [{"user_message": "Hi", "response": "Hello!"}],
            },
        )
        assert styled_resp.status_code == 200
        assert styled_resp.json()["answer"]

        invalid_resp = client.post("/query", json={"question": ""})
        assert invalid_resp.status_code == 422

        metrics_resp = client.get("/metrics")
        assert metrics_resp.status_code == 200
        assert metrics_resp.json()["total_queries"] >= 2

        traces_resp = client.get("/traces")
        items = traces_resp.json()["items"]
        assert items
        trace_resp = client.get(f"/traces/{items[0]['trace_id']}")
        assert trace_resp.status_code == 200
        assert trace_resp.json()["question"] == "How many years of React experience?"
        assert client.get("/traces/missing").status_code == 404

        cache_resp = client.get("/cache")
        assert cache_resp.status_code == 200
        assert set(cache_resp.json()) == {"embedding", "query"}
