"""Prompt and context construction for answer generation."""

from __future__ import annotations

import re
from collections.abc import Sequence

from langchain_core.prompts import ChatPromptTemplate

from resume_qa.types import ConversationTurn, ResponseStyle, ScoredChunk

_WHITESPACE = re.compile(r"\s+")

STYLE_INSTRUCTIONS: dict[ResponseStyle, str] = {
    ResponseStyle.HR: (
        "professional and achievement-focused manner. Focus on experience, "
        "qualifications, and measurable results"
    ),
    ResponseStyle.DEVELOPER: (
        "technical and collaborative manner. Use technical language and share "
        "insights about technologies"
    ),
    ResponseStyle.FRIEND: (
        "casual and enthusiastic manner. Use emojis when appropriate and make "
        "concepts accessible"
    ),
}

_SYSTEM_PROMPT = "You are {persona}. Respond in a {style_instruction}."

_HUMAN_PROMPT = """
Context:
{context}

{history}Question: {question}

Instructions:
- Answer as {persona} in first person
- Use only the information provided in the context above
- If no relevant information is available, acknowledge this honestly
- Keep response under {max_words} words
- Be specific and concrete

Answer:
""".strip()

ANSWER_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM_PROMPT),
        ("human", _HUMAN_PROMPT),
    ]
)


def section_text(item: ScoredChunk, style: ResponseStyle) -> str:
    """Per-style text for a chunk, falling back to developer, then raw text."""
    responses = item.chunk.metadata.get("responses")
    if isinstance(responses, dict):
        for key in (style.value, ResponseStyle.DEVELOPER.value):
            text = responses.get(key)
            if isinstance(text, str) and text.strip():
                return text
    return item.chunk.text


def build_context(chunks: Sequence[ScoredChunk], style: ResponseStyle, max_sections: int = 2) -> str:
    lines = []
    for item in list(chunks)[:max_sections]:
        text = _WHITESPACE.sub(" ", section_text(item, style)).strip()
        if text:
            lines.append(f"- {text}")
    return "\n".join(lines)


def format_history(turns: Sequence[ConversationTurn], limit: int = 2) -> str:
    recent = [turn for turn in list(turns)[-limit:] if turn.user_message and turn.response]
    if not recent:
        return ""
    lines = ["Recent conversation:"]
    for index, turn in enumerate(recent, start=1):
        lines.append(f"Q{index}: {_WHITESPACE.sub(' ', turn.user_message).strip()}")
        lines.append(f"A{index}: {_WHITESPACE.sub(' ', turn.response).strip()}")
    return "\n".join(lines) + "\n\n"


def build_prompt(
    question: str,
    context: str,
    *,
    style: ResponseStyle = ResponseStyle.DEVELOPER,
    persona: str = "the candidate",
    history: Sequence[ConversationTurn] = (),
    max_words: int = 100,
) -> str:
    return ANSWER_PROMPT.format(
        persona=persona,
        style_instruction=STYLE_INSTRUCTIONS.get(style, STYLE_INSTRUCTIONS[ResponseStyle.DEVELOPER]),
        context=context,
        history=format_history(history),
        question=question.strip(),
        max_words=max_words,
    )
