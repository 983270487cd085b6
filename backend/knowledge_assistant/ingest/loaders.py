"""Document loaders for supported formats."""

from __future__ import annotations

from pathlib import Path

import fitz

from knowledge_assistant.core.errors import ExtractionError, UnsupportedFormat
from knowledge_assistant.ingest.types import LoadedDocument
from knowledge_assistant.models.entities import DocumentKind
from knowledge_assistant.utils.text import normalize_newlines


class BaseLoader:
    """Common loader interface."""

    kind: DocumentKind
    suffixes: tuple[str, ...] = ()

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def load(self, path: Path) -> LoadedDocument:
        raw = _read_bytes(path)
        text = self.extract(path, raw)
        return LoadedDocument(
            path=path,
            name=path.name,
            kind=self.kind,
            text=text,
            size_bytes=len(raw),
            metadata={"path": str(path)},
        )

    def extract(self, path: Path, raw: bytes) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class TextLoader(BaseLoader):
    kind = DocumentKind.TXT
    suffixes = (".txt", ".text")

    def extract(self, path: Path, raw: bytes) -> str:
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(f"{path.name} is not valid UTF-8: {exc}") from exc
        return normalize_newlines(text)


class MarkdownLoader(TextLoader):
    """Markdown is indexed as written, formatting included."""

    kind = DocumentKind.MD
    suffixes = (".md", ".markdown")


class PDFLoader(BaseLoader):
    kind = DocumentKind.PDF
    suffixes = (".pdf",)

    def extract(self, path: Path, raw: bytes) -> str:
        try:
            with fitz.open(stream=raw, filetype="pdf") as doc:
                pages = [page.get_text("text", sort=True) for page in doc]
        except Exception as exc:
            raise ExtractionError(f"Could not read PDF {path.name}: {exc}") from exc
        return normalize_newlines("\n\n".join(pages))


class LoaderRegistry:
    """Registry that selects an appropriate loader for a path."""

    def __init__(self) -> None:
        self._loaders: list[BaseLoader] = [
            TextLoader(),
            MarkdownLoader(),
            PDFLoader(),
        ]

    def for_path(self, path: Path) -> BaseLoader | None:
        for loader in self._loaders:
            if loader.can_load(path):
                return loader
        return None

    def load(self, path: Path) -> LoadedDocument:
        loader = self.for_path(path)
        if loader is None:
            raise UnsupportedFormat(f"Unsupported file type: {path.suffix or 'no extension'}")
        return loader.load(path)


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ExtractionError(f"Could not read {path}: {exc}") from exc


__all__ = ["BaseLoader", "TextLoader", "MarkdownLoader", "PDFLoader", "LoaderRegistry"]
