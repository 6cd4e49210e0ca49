import json

import pytest
from pydantic import ValidationError

from resume_qa.ingest.knowledge import load_knowledge, parse_knowledge


def test_record_list_becomes_chunks(tmp_path) -> None:
    path = tmp_path / "cv.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "skills_react",
                    "text": "  Builds React apps.  ",
                    "category": "skills",
                    "keywords": ["react"],
                    "responses": {"hr": "I deliver React products."},
                },
                {"id": "contact", "text": "Email me.", "embedding": [0.1, 0.2]},
            ]
        ),
        encoding="utf-8",
    )

    chunks = load_knowledge(path)

    assert [chunk.id for chunk in chunks] == ["skills_react", "contact"]
    assert chunks[0].text == "Builds React apps."
    assert chunks[0].embedding is None
    assert chunks[0].metadata == {
        "category": "skills",
        "source": "cv.json",
        "keywords": ["react"],
        "responses": {"hr": "I deliver React products."},
    }
    assert chunks[1].embedding == [0.1, 0.2]
    assert chunks[1].metadata["category"] == "general"


def test_cv_sections_are_flattened_by_category() -> None:
    document = {
        "sections": {
            "experience": {
                "react": {
                    "id": "exp_react",
                    "keywords": ["react"],
                    "responses": {"hr": "HR text.", "developer": "Developer text."},
                }
            },
            "education": {
                "degree": {"id": "edu_degree", "responses": {"friend": "Studied CS!"}},
            },
        }
    }

    chunks = parse_knowledge(document)

    assert [(chunk.id, chunk.text, chunk.metadata["category"]) for chunk in chunks] == [
        ("exp_react", "Developer text.", "experience"),
        ("edu_degree", "Studied CS!", "education"),
    ]
    assert chunks[0].metadata["source"] == "inline"


def test_duplicate_ids_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate chunk id"):
        parse_knowledge([{"id": "a", "text": "One."}, {"id": "a", "text": "Two."}])


def test_blank_text_and_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        parse_knowledge([{"id": "a", "text": "   "}])
    with pytest.raises(ValidationError):
        parse_knowledge([{"id": "a", "text": "One.", "score": 1}])


def test_unsupported_shape_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_knowledge({"chunks": []})
