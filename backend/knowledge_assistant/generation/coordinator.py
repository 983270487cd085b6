"""Grounded answer generation."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

from knowledge_assistant.core.config import Settings
from knowledge_assistant.core.errors import GenerationError
from knowledge_assistant.core.logging import get_logger
from knowledge_assistant.core.metrics import GENERATION_LATENCY
from knowledge_assistant.generation.llm import LanguageModel
from knowledge_assistant.generation.prompt import build_prompt
from knowledge_assistant.models.entities import DocumentSource, Message, SearchResult

logger = get_logger(__name__)


@dataclass(slots=True)
class GeneratedAnswer:
    text: str
    sources: list[DocumentSource] = field(default_factory=list)


class GenerationCoordinator:
    """Build a budgeted prompt from retrieved chunks and ask the language model."""

    def __init__(self, model: LanguageModel, settings: Settings) -> None:
        self.model = model
        self.settings = settings

    async def generate(
        self,
        query: str,
        history: Sequence[Message],
        retrieved: Sequence[SearchResult],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GeneratedAnswer:
        temperature = self.settings.temperature if temperature is None else temperature
        max_tokens = self.settings.max_tokens if max_tokens is None else max_tokens
        plan = build_prompt(
            query,
            history,
            retrieved,
            budget_tokens=self.settings.context_window_tokens - max_tokens,
            min_relevance=self.settings.min_relevance,
            history_max_messages=self.settings.history_max_messages,
        )
        started = time.perf_counter()
        try:
            text = await self.model.complete(plan.messages, temperature=temperature, max_tokens=max_tokens)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Language model failed: {exc}") from exc
        finally:
            GENERATION_LATENCY.labels(grounded=str(plan.grounded).lower()).observe(time.perf_counter() - started)
        logger.info(
            "Generated answer",
            extra={
                "ctx_sources": len(plan.sources),
                "ctx_history": plan.history_used,
                "ctx_grounded": plan.grounded,
            },
        )
        return GeneratedAnswer(
            text=text,
            sources=[DocumentSource.from_result(result) for result in plan.sources],
        )


__all__ = ["GeneratedAnswer", "GenerationCoordinator"]
