import pytest

from resume_qa.query.intent import IntentClassifier
from resume_qa.query.preprocess import QueryPreprocessor, normalize
from resume_qa.types import ConversationTurn, Intent


def test_normalize_strips_punctuation_and_whitespace() -> None:
    assert normalize("  What's   your React experience?! ") == "what s your react experience"


def test_preprocess_appends_first_synonym() -> None:
    preprocessor = QueryPreprocessor()

    query = preprocessor.preprocess("Tell me about your React and database work")

    assert query.startswith("tell me about your react and database work")
    assert query.endswith("reactjs db")


def test_preprocess_adds_keywords_from_recent_turns() -> None:
    preprocessor = QueryPreprocessor()
    turns = [
        ConversationTurn("hi", "hello", matched_sections=["ignored_older_turn"]),
        ConversationTurn("q1", "a1", matched_sections=["experience_react"]),
        ConversationTurn("q2", "a2", matched_sections=["projects-portfolio-site", "education_degree"]),
    ]

    query = preprocessor.preprocess("Anything else?", turns)

    assert query == "anything else experience react projects"


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("Skills?", 0.2),
        ("What frameworks have you used at scale?", 0.25),
        ("Describe the architecture of your largest system", 0.35),
        ("Tell me about your recent work history", 0.3),
    ],
)
def test_adaptive_threshold_applies_first_matching_rule(query: str, expected: float) -> None:
    preprocessor = QueryPreprocessor(base_threshold=0.3)

    assert preprocessor.adaptive_threshold(query) == pytest.approx(expected)


def test_adaptive_threshold_is_clamped() -> None:
    assert QueryPreprocessor(base_threshold=0.05).adaptive_threshold("hi") == 0.0
    assert QueryPreprocessor(base_threshold=1.0).adaptive_threshold(
        "Explain the implementation details of the release pipeline"
    ) == 1.0


@pytest.mark.parametrize(
    ("query", "intent"),
    [
        ("How many years of React experience?", Intent.FACT_RETRIEVAL),
        ("What is your email?", Intent.FACT_RETRIEVAL),
        ("which university did you attend", Intent.FACT_RETRIEVAL),
        ("Can I see your GitHub?", Intent.FACT_RETRIEVAL),
        ("Tell me about a project you enjoyed", Intent.CONVERSATIONAL),
        ("Why do you like frontend work?", Intent.CONVERSATIONAL),
        ("", Intent.CONVERSATIONAL),
        ("   ", Intent.CONVERSATIONAL),
    ],
)
def test_intent_classifier(query: str, intent: Intent) -> None:
    assert IntentClassifier().classify(query) is intent
