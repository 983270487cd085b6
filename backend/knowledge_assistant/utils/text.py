"""Text processing helpers."""

from __future__ import annotations

import re

_NEWLINE_RE = re.compile(r"\r\n?")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def normalize_newlines(text: str) -> str:
    """Unify line endings and squeeze runs of blank lines, keeping paragraphs."""
    text = _NEWLINE_RE.sub("\n", text).replace("\x00", "")
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def estimate_tokens(text: str) -> int:
    """Rough token estimate at about four characters per token."""
    return (len(text) + 3) // 4 if text else 0


def preview(text: str, limit: int = 30) -> str:
    """Shorten text to ``limit`` characters, marking truncation."""
    return text[:limit] + ("..." if len(text) > limit else "")
