"""Tests for prompt assembly and the generation coordinator."""

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import FakeLanguageModel
from knowledge_assistant.core.errors import GenerationError
from knowledge_assistant.generation.coordinator import GenerationCoordinator
from knowledge_assistant.generation.prompt import (
    GROUNDED_INSTRUCTION,
    UNGROUNDED_INSTRUCTION,
    build_prompt,
)
from knowledge_assistant.models.entities import Message, SearchResult


def _result(idx: int, score: float = 0.8, size: int = 40) -> SearchResult:
    return SearchResult(
        chunk_id=f"doc-{idx}",
        document_id="doc",
        document_name=f"file{idx}.txt",
        content=f"chunk {idx} " + "x" * size,
        score=score,
    )


def _turn(idx: int, role: str = "user", size: int = 20) -> Message:
    return Message(
        id=f"m{idx}",
        chat_id="chat",
        role=role,
        content=f"turn {idx} " + "y" * size,
        timestamp=datetime.now(tz=timezone.utc),
    )


def test_layout_order() -> None:
    plan = build_prompt("What is the refund window?", [_turn(1), _turn(2, "assistant")], [_result(1)], 4000)
    roles = [message["role"] for message in plan.messages]
    assert roles == ["system", "system", "user", "assistant", "user"]
    assert plan.messages[0]["content"] == GROUNDED_INSTRUCTION
    assert "[1] (file1.txt)" in plan.messages[1]["content"]
    assert plan.messages[-1]["content"] == "What is the refund window?"
    assert plan.grounded
    assert [source.chunk_id for source in plan.sources] == ["doc-1"]


def test_no_context_uses_explicit_instruction() -> None:
    plan = build_prompt("hello", [], [], 4000)
    assert plan.messages[0]["content"] == UNGROUNDED_INSTRUCTION
    assert len(plan.messages) == 2
    assert plan.sources == []
    assert not plan.grounded


def test_chunks_below_min_relevance_are_skipped() -> None:
    plan = build_prompt("q", [], [_result(1, 0.9), _result(2, 0.1), _result(3, 0.6)], 4000, min_relevance=0.5)
    assert [source.chunk_id for source in plan.sources] == ["doc-1", "doc-3"]
    assert "[2] (file3.txt)" in plan.messages[1]["content"]


def test_budget_limits_chunks_in_retrieval_order() -> None:
    retrieved = [_result(idx, size=400) for idx in range(10)]
    plan = build_prompt("question", [], retrieved, budget_tokens=400)
    assert 0 < len(plan.sources) < 10
    assert [s.chunk_id for s in plan.sources] == [r.chunk_id for r in retrieved[: len(plan.sources)]]


def test_history_dropped_oldest_first() -> None:
    history = [_turn(idx, "user" if idx % 2 == 0 else "assistant", size=200) for idx in range(30)]
    plan = build_prompt("question", history, [], budget_tokens=600)
    assert 0 < plan.history_used < 30
    kept = [message["content"] for message in plan.messages[1:-1]]
    assert kept == [turn.content for turn in history[-plan.history_used :]]


def test_history_capped_by_message_count() -> None:
    history = [_turn(idx) for idx in range(10)]
    plan = build_prompt("q", history, [], budget_tokens=100_000, history_max_messages=4)
    assert plan.history_used == 4


def test_query_and_instruction_kept_when_budget_tiny() -> None:
    plan = build_prompt("question " * 200, [_turn(1)], [_result(1)], budget_tokens=10)
    assert plan.messages[0]["content"] == UNGROUNDED_INSTRUCTION
    assert plan.messages[-1]["content"] == "question " * 200
    assert plan.sources == []
    assert plan.history_used == 0


def test_coordinator_returns_sources(settings) -> None:
    model = FakeLanguageModel(reply="Fourteen days [1].")
    coordinator = GenerationCoordinator(model, settings)
    answer = asyncio.run(coordinator.generate("refund window?", [], [_result(1, 0.7)]))
    assert answer.text == "Fourteen days [1]."
    assert len(answer.sources) == 1
    source = answer.sources[0]
    assert source.document_name == "file1.txt"
    assert source.relevance == pytest.approx(0.7)
    assert model.calls and model.calls[0][-1]["content"] == "refund window?"


def test_coordinator_wraps_model_failures(settings) -> None:
    class Exploding(FakeLanguageModel):
        async def complete(self, messages, temperature, max_tokens):
            raise ConnectionError("refused")

    with pytest.raises(GenerationError):
        asyncio.run(GenerationCoordinator(Exploding(), settings).generate("q", [], []))
    with pytest.raises(GenerationError):
        asyncio.run(GenerationCoordinator(FakeLanguageModel(fail=True), settings).generate("q", [], []))
