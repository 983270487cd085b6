"""Language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import openai

from knowledge_assistant.core.config import Settings
from knowledge_assistant.core.errors import GenerationError
from knowledge_assistant.core.logging import get_logger

logger = get_logger(__name__)

ChatMessage = dict[str, str]


class LanguageModel(ABC):
    """Anything that turns a list of chat messages into a reply."""

    name: str = "language-model"

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str: ...

    async def aclose(self) -> None:
        """Release network resources."""


class OpenAICompatibleModel(LanguageModel):
    """Chat completions against a locally hosted OpenAI-compatible server."""

    def __init__(self, base_url: str, model: str, api_key: str = "local", timeout: float = 120.0) -> None:
        self.name = model
        self.base_url = base_url
        self.client = openai.AsyncOpenAI(base_url=base_url, api_key=api_key, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAICompatibleModel":
        return cls(
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout,
        )

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.name,
                messages=list(messages),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as exc:
            logger.error(
                "Language model request failed",
                extra={"ctx_model": self.name, "ctx_base_url": self.base_url, "ctx_error": str(exc)},
            )
            raise GenerationError(f"Language model request failed: {exc}") from exc
        if not response.choices:
            raise GenerationError("Language model returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise GenerationError("Language model returned an empty message")
        return content.strip()

    async def aclose(self) -> None:
        await self.client.close()


__all__ = ["ChatMessage", "LanguageModel", "OpenAICompatibleModel"]
