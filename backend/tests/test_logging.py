"""Tests for structured logging helpers."""

import logging

import orjson

from knowledge_assistant.core.logging import ContextFilter, JsonFormatter, TextFormatter, log_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("knowledge_assistant.test", logging.INFO, __file__, 1, "indexed %s", ("doc",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    ContextFilter().filter(record)
    return record


def test_bound_context_is_attached_and_reset() -> None:
    with log_context(job="add", document_id="doc_1"):
        with log_context(document_id="doc_2"):
            inner = _record()
        outer = _record(ctx_job="explicit")
    after = _record()

    assert inner.ctx_job == "add"
    assert inner.ctx_document_id == "doc_2"
    assert outer.ctx_job == "explicit"
    assert outer.ctx_document_id == "doc_1"
    assert not hasattr(after, "ctx_job")


def test_json_formatter_includes_context() -> None:
    with log_context(chat_id="chat_1"):
        record = _record(ctx_chunks=3)
    payload = orjson.loads(JsonFormatter().format(record))
    assert payload["message"] == "indexed doc"
    assert payload["level"] == "INFO"
    assert payload["ctx_chat_id"] == "chat_1"
    assert payload["ctx_chunks"] == 3


def test_text_formatter_appends_pairs() -> None:
    line = TextFormatter().format(_record(ctx_chunks=3))
    assert line.endswith("indexed doc chunks=3")
