"""Prompt assembly under a token budget."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from knowledge_assistant.generation.llm import ChatMessage
from knowledge_assistant.models.entities import Message, SearchResult
from knowledge_assistant.utils.text import estimate_tokens

GROUNDED_INSTRUCTION = """You are a helpful assistant that answers questions using ONLY the context documents provided below.

Guidelines:
- Base every statement on the context; do not use outside knowledge
- Cite the documents you used with their bracketed numbers, for example [1] or [2]
- If the context does not contain the answer, say that the documents do not cover it
- Be concise and precise"""

UNGROUNDED_INSTRUCTION = """You are a helpful assistant for a private document collection.

No relevant context documents are available for this question. Say so explicitly, and do not present anything you write as coming from the user's documents."""

CONTEXT_HEADER = "Context documents:"

# Per-message allowance for role markers and separators.
MESSAGE_OVERHEAD_TOKENS = 4


@dataclass(slots=True)
class PromptPlan:
    messages: list[ChatMessage]
    sources: list[SearchResult] = field(default_factory=list)
    history_used: int = 0

    @property
    def grounded(self) -> bool:
        return bool(self.sources)


def format_context_entry(position: int, result: SearchResult) -> str:
    return f"[{position}] ({result.document_name})\n{result.content}"


def build_prompt(
    query: str,
    history: Sequence[Message],
    retrieved: Sequence[SearchResult],
    budget_tokens: int,
    min_relevance: float = 0.0,
    history_max_messages: int = 20,
) -> PromptPlan:
    """Lay out instruction, context, prior turns and query within ``budget_tokens``.

    The instruction and the query are always present. Retrieved chunks are
    taken in retrieval order until one does not fit, then prior turns are
    taken newest first until one does not fit.
    """
    fixed = _cost(GROUNDED_INSTRUCTION) + _cost(query)
    remaining = budget_tokens - fixed

    included: list[SearchResult] = []
    context_parts: list[str] = []
    for result in retrieved:
        if result.score < min_relevance:
            continue
        entry = format_context_entry(len(included) + 1, result)
        cost = estimate_tokens(entry) + 1
        if not included:
            cost += _cost(CONTEXT_HEADER)
        if cost > remaining:
            break
        included.append(result)
        context_parts.append(entry)
        remaining -= cost

    if not included:
        remaining += _cost(GROUNDED_INSTRUCTION) - _cost(UNGROUNDED_INSTRUCTION)

    turns: list[Message] = []
    for message in reversed(history):
        if len(turns) >= history_max_messages:
            break
        cost = _cost(message.content)
        if cost > remaining:
            break
        turns.append(message)
        remaining -= cost
    turns.reverse()

    messages: list[ChatMessage] = []
    if included:
        messages.append({"role": "system", "content": GROUNDED_INSTRUCTION})
        messages.append({"role": "system", "content": "\n\n".join([CONTEXT_HEADER, *context_parts])})
    else:
        messages.append({"role": "system", "content": UNGROUNDED_INSTRUCTION})
    messages.extend({"role": turn.role, "content": turn.content} for turn in turns)
    messages.append({"role": "user", "content": query})
    return PromptPlan(messages=messages, sources=included, history_used=len(turns))


def _cost(text: str) -> int:
    return estimate_tokens(text) + MESSAGE_OVERHEAD_TOKENS


__all__ = [
    "GROUNDED_INSTRUCTION",
    "UNGROUNDED_INSTRUCTION",
    "PromptPlan",
    "build_prompt",
    "format_context_entry",
]
