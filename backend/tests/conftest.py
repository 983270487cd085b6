"""Test fixtures for the knowledge assistant."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from knowledge_assistant.core.errors import GenerationError  # noqa: E402
from knowledge_assistant.generation.llm import ChatMessage, LanguageModel  # noqa: E402


class FakeLanguageModel(LanguageModel):
    """Scripted language model recording every prompt it receives."""

    name = "fake"

    def __init__(self, reply: str = "Scripted answer.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[list[ChatMessage]] = []

    async def complete(self, messages: Sequence[ChatMessage], temperature: float, max_tokens: int) -> str:
        self.calls.append(list(messages))
        if self.fail:
            raise GenerationError("model offline")
        return self.reply


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KA_DB_PATH", str(tmp_path / "ka.db"))
    monkeypatch.setenv("KA_DOCUMENTS_DIR", str(tmp_path / "library"))
    monkeypatch.setenv("KA_EMBEDDING_BACKEND", "hashed")
    monkeypatch.delenv("KA_CONFIG", raising=False)

    from knowledge_assistant.api import dependencies as deps
    from knowledge_assistant.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._CONTEXT = None
    deps._SERVICE = None
    deps._LANGUAGE_MODEL = FakeLanguageModel()
    yield
    if deps._CONTEXT is not None:
        deps._CONTEXT.close()
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._CONTEXT = None
    deps._SERVICE = None
    deps._LANGUAGE_MODEL = None


@pytest.fixture
def settings(tmp_path: Path):
    from knowledge_assistant.core.config import Settings

    return Settings(
        db_path=tmp_path / "ka.db",
        documents_dir=tmp_path / "library",
        embedding_backend="hashed",
        embedding_dim=64,
    )


@pytest.fixture
def fake_llm() -> FakeLanguageModel:
    return FakeLanguageModel()


@pytest.fixture
def context(settings, fake_llm):
    from knowledge_assistant.core.context import AppContext

    ctx = AppContext(settings, language_model=fake_llm).start()
    yield ctx
    ctx.close()


@pytest.fixture
def service(context):
    from knowledge_assistant.service import AssistantService

    return AssistantService(context)


@pytest.fixture
def write_file(tmp_path: Path):
    def _write(name: str, content: str) -> Path:
        path = tmp_path / "incoming" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture(scope="session")
def sample_text() -> str:
    return (
        "Refunds are issued within fourteen days of a returned purchase. "
        "Customers must keep the original receipt to request a refund.\n\n"
        "Shipping is free for orders above fifty euros. Express delivery costs extra "
        "and arrives within two business days.\n\n"
        "Our support team answers email on weekdays between nine and five."
    )
