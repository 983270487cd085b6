"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from knowledge_assistant.core.config import Settings, get_settings
from knowledge_assistant.core.context import AppContext
from knowledge_assistant.generation.llm import LanguageModel
from knowledge_assistant.service import AssistantService

_CONTEXT: AppContext | None = None
_SERVICE: AssistantService | None = None
# Replaces the configured endpoint when set before the context is built.
_LANGUAGE_MODEL: LanguageModel | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_app_context() -> AppContext:
    global _CONTEXT
    if _CONTEXT is None:
        _CONTEXT = AppContext(get_app_settings(), language_model=_LANGUAGE_MODEL).start()
    return _CONTEXT


def get_service() -> AssistantService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = AssistantService(get_app_context())
    return _SERVICE


async def close_app_context() -> None:
    global _CONTEXT, _SERVICE
    if _CONTEXT is not None:
        await _CONTEXT.aclose()
    _CONTEXT = None
    _SERVICE = None


__all__ = [
    "get_app_settings",
    "get_app_context",
    "get_service",
    "close_app_context",
]
