"""PDF text extraction producing one ``PageText`` per page."""

from __future__ import annotations

import asyncio
import re
import tempfile
import unicodedata
from pathlib import Path
from typing import List, Protocol, Sequence

from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document as LCDocument

from docqa.errors import ExtractionError
from docqa.metrics.observability import get_logger
from docqa.models import PageText


class PageExtractor(Protocol):
    """Protocol for OCR / text extraction collaborators."""

    async def extract(self, data: bytes, *, file_name: str = "document.pdf") -> Sequence[PageText]:
        """Return the ordered pages of text contained in ``data``."""


def _normalize_text(raw: str) -> str:
    normalized = unicodedata.normalize("NFKC", raw)
    normalized = normalized.replace("\u00a0", " ")
    normalized = re.sub(r"[ \t\f\v]+", " ", normalized)
    # whitespace-only lines must still read as paragraph breaks
    normalized = re.sub(r" ?(\r?\n) ?", r"\1", normalized)
    return normalized.strip()


def pages_from_documents(documents: Sequence[LCDocument]) -> List[PageText]:
    """Convert loader output into 1-based ``PageText`` records."""

    pages: List[PageText] = []
    for position, document in enumerate(documents):
        page_index = document.metadata.get("page", position)
        try:
            page_number = int(page_index) + 1
        except (TypeError, ValueError):
            page_number = position + 1
        pages.append(PageText(page_number=page_number, text=_normalize_text(document.page_content)))
    return pages


class PyPDFPageExtractor:
    """Extract page text from PDF bytes via LangChain's ``PyPDFLoader``."""

    _logger = get_logger("extraction")

    def extract_path(self, path: Path) -> List[PageText]:
        try:
            documents = PyPDFLoader(str(path)).load()
        except Exception as exc:
            raise ExtractionError(f"Failed to extract text from {path.name}: {exc}") from exc
        pages = pages_from_documents(documents)
        self._logger.info("extraction.complete", path=str(path), page_count=len(pages))
        return pages

    def _extract_bytes(self, data: bytes, file_name: str) -> List[PageText]:
        suffix = Path(file_name).suffix or ".pdf"
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / f"upload{suffix}"
            destination.write_bytes(data)
            return self.extract_path(destination)

    async def extract(self, data: bytes, *, file_name: str = "document.pdf") -> Sequence[PageText]:
        if not data:
            raise ExtractionError(f"Document {file_name} is empty")
        return await asyncio.to_thread(self._extract_bytes, data, file_name)
