"""End-to-end tests for the command surface."""

import asyncio

import numpy as np
import pytest

from knowledge_assistant.core.errors import (
    ChatBusyError,
    DimensionMismatch,
    ExtractionError,
    GenerationError,
    IndexNotReady,
    NotFound,
    SettingsError,
    UnsupportedFormat,
)
from knowledge_assistant.generation.prompt import UNGROUNDED_INSTRUCTION
from knowledge_assistant.models.entities import DocumentStatus, IndexState
from knowledge_assistant.service import DEFAULT_CHAT_TITLE


def run(coro):
    return asyncio.run(coro)


def test_upload_indexes_and_stores_text(service, context, write_file, sample_text) -> None:
    path = write_file("policies.md", sample_text)
    document = run(service.upload_document(path, wait=True))
    assert document.status is DocumentStatus.INDEXED
    assert document.kind.value == "md"
    assert run(service.get_document_content(document.id)) == sample_text
    chunks = run(service.get_document_chunks(document.id))
    assert chunks and chunks[0].id == f"{document.id}-0"
    assert [doc.id for doc in run(service.list_documents())] == [document.id]
    assert context.settings.documents_dir.joinpath(f"{document.id}.md").exists()


def test_upload_rejects_unknown_and_missing_files(service, write_file, tmp_path) -> None:
    with pytest.raises(UnsupportedFormat):
        run(service.upload_document(write_file("notes.docx", "x")))
    with pytest.raises(NotFound):
        run(service.upload_document(tmp_path / "missing.txt"))


def test_upload_invalid_text_marks_document_failed(service, context, tmp_path) -> None:
    path = tmp_path / "broken.txt"
    path.write_bytes(b"\xff\xfe\xfa not utf-8")
    with pytest.raises(ExtractionError):
        run(service.upload_document(path))
    documents = run(service.list_documents())
    assert len(documents) == 1
    assert documents[0].status is DocumentStatus.FAILED
    assert documents[0].error


def test_search_on_empty_corpus(service) -> None:
    run(service.init_embedding_model())
    assert run(service.is_model_loaded()) is True
    assert run(service.search_documents("refund policy", 5)) == []


def test_delete_document(service, context, write_file, sample_text) -> None:
    document = run(service.upload_document(write_file("a.txt", sample_text), wait=True))
    ack = run(service.delete_document(document.id))
    assert ack["deleted"] == document.id
    assert ack["entries_removed"] >= 1
    assert context.index.size == 0
    assert run(service.index_status())["state"] == IndexState.READY.value
    assert run(service.search_documents("refund")) == []
    with pytest.raises(NotFound):
        run(service.get_document(document.id))
    with pytest.raises(NotFound):
        run(service.delete_document(document.id))


def test_send_message_without_model_degrades(service, fake_llm) -> None:
    chat = run(service.create_chat())
    assert chat.title == DEFAULT_CHAT_TITLE
    user, assistant = run(service.send_message(chat.id, "What does the refund policy say?"))
    assert user.role == "user"
    assert assistant.role == "assistant"
    assert assistant.sources == []
    assert assistant.content == fake_llm.reply
    assert "No relevant context" in fake_llm.calls[0][0]["content"]


def test_send_message_grounded_with_citations(service, fake_llm, write_file, sample_text) -> None:
    document = run(service.upload_document(write_file("policies.txt", sample_text), wait=True))
    chat = run(service.create_chat())
    _, assistant = run(service.send_message(chat.id, "How long do refunds take?"))
    assert assistant.sources
    assert assistant.sources[0].document_id == document.id
    assert assistant.sources[0].document_name == "policies.txt"
    assert "[1] (policies.txt)" in fake_llm.calls[0][1]["content"]

    detail = run(service.get_chat(chat.id))
    assert [m.role for m in detail.messages] == ["user", "assistant"]
    assert detail.messages[1].sources == assistant.sources


def test_first_message_titles_chat(service) -> None:
    chat = run(service.create_chat())
    run(service.send_message(chat.id, "Summarize the onboarding checklist for new hires"))
    assert run(service.get_chat(chat.id)).chat.title == "Summarize the onboarding check..."
    run(service.send_message(chat.id, "And the second step?"))
    assert run(service.get_chat(chat.id)).chat.title == "Summarize the onboarding check..."


def test_history_is_passed_to_the_model(service, fake_llm) -> None:
    chat = run(service.create_chat())
    run(service.send_message(chat.id, "first question"))
    run(service.send_message(chat.id, "second question"))
    contents = [message["content"] for message in fake_llm.calls[1]]
    assert contents[-3:] == ["first question", fake_llm.reply, "second question"]


def test_concurrent_send_is_rejected(service, fake_llm) -> None:
    async def scenario():
        release = asyncio.Event()

        original = fake_llm.complete

        async def slow_complete(messages, temperature, max_tokens):
            await release.wait()
            return await original(messages, temperature, max_tokens)

        fake_llm.complete = slow_complete
        chat = await service.create_chat()
        first = asyncio.create_task(service.send_message(chat.id, "one"))
        await asyncio.sleep(0.05)
        with pytest.raises(ChatBusyError):
            await service.send_message(chat.id, "two")
        release.set()
        await first
        await service.send_message(chat.id, "three")

    run(scenario())


def test_generation_failure_propagates(service, fake_llm) -> None:
    fake_llm.fail = True
    chat = run(service.create_chat())
    with pytest.raises(GenerationError):
        run(service.send_message(chat.id, "hello"))


def test_chat_management(service) -> None:
    chat = run(service.create_chat())
    renamed = run(service.rename_chat(chat.id, "Budget questions"))
    assert renamed.title == "Budget questions"
    assert [c.id for c in run(service.list_chats())] == [chat.id]
    run(service.delete_chat(chat.id))
    with pytest.raises(NotFound):
        run(service.get_chat(chat.id))
    with pytest.raises(NotFound):
        run(service.send_message(chat.id, "hi"))


def test_update_settings_validates_and_queues_rebuild(service, context, write_file, sample_text) -> None:
    run(service.upload_document(write_file("a.txt", sample_text * 3), wait=True))
    before = len(context.index.ids())

    settings = run(service.update_settings(temperature=0.2, top_k=3))
    assert settings.temperature == 0.2
    assert settings.top_k == 3

    with pytest.raises(SettingsError):
        run(service.update_settings(temperature=1.5))
    with pytest.raises(SettingsError):
        run(service.update_settings(chunk_size=256, chunk_overlap=256))
    with pytest.raises(SettingsError):
        run(service.update_settings(db_path="/elsewhere.db"))
    assert context.settings.temperature == 0.2
    assert context.settings.chunk_size == 512

    run(service.update_settings(chunk_size=128, chunk_overlap=16))
    assert context.lifecycle.wait_idle(5)
    assert len(context.index.ids()) > before
    assert all(len(chunk.text) <= 128 for chunk in context.store.get_chunks(context.store.list_documents()[0].id))


def test_send_message_while_index_in_error_degrades(service, context, fake_llm, write_file, sample_text) -> None:
    context.engine.load_model()
    context.index.insert("foreign-0", np.ones(3, dtype=np.float32))
    with pytest.raises(DimensionMismatch):
        run(service.upload_document(write_file("policies.txt", sample_text), wait=True))
    assert context.lifecycle.wait_idle(5)
    assert context.lifecycle.state is IndexState.ERROR
    with pytest.raises(IndexNotReady):
        run(service.search_documents("refund"))

    chat = run(service.create_chat())
    _, assistant = run(service.send_message(chat.id, "How long do refunds take?"))
    assert assistant.content == fake_llm.reply
    assert assistant.sources == []
    assert fake_llm.calls[-1][0]["content"] == UNGROUNDED_INSTRUCTION


def test_failed_generation_stores_no_turns(service, fake_llm) -> None:
    chat = run(service.create_chat())
    fake_llm.fail = True
    with pytest.raises(GenerationError):
        run(service.send_message(chat.id, "first question"))
    detail = run(service.get_chat(chat.id))
    assert detail.messages == []
    assert detail.chat.title == DEFAULT_CHAT_TITLE

    fake_llm.fail = False
    run(service.send_message(chat.id, "second question"))
    assert [m.content for m in run(service.get_chat(chat.id)).messages] == ["second question", fake_llm.reply]
    assert fake_llm.calls[-1][1:] == [{"role": "user", "content": "second question"}]
