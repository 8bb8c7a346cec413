"""Structure-aware text chunking with word overlap between chunks.

Token counts are estimated at four characters per token instead of running a
real tokenizer. The defaults (800 token chunks, 50 word overlap) are tuned for
that estimate; switching to a real tokenizer means revisiting both.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from docqa.errors import ConfigurationError
from docqa.metrics.observability import PipelineMetrics, get_logger
from docqa.models import Chunk, PageText

CHARS_PER_TOKEN = 4

_PARAGRAPH_BREAK = re.compile(r"(?:\r?\n){2,}")
_SENTENCE_END = re.compile(r"[.!?][ \n]")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_paragraphs(text: str) -> List[str]:
    return [part for part in _PARAGRAPH_BREAK.split(text) if part.strip()]


def split_sentences(text: str) -> List[str]:
    """Split on '. ', '! ', '? ' and their newline variants, keeping terminators."""

    sentences: List[str] = []
    last = 0
    for match in _SENTENCE_END.finditer(text):
        sentences.append(text[last : match.end()])
        last = match.end()
    if last < len(text):
        sentences.append(text[last:])
    return [sentence for sentence in sentences if sentence.strip()]


def overlap_suffix(text: str, overlap: int) -> str:
    """Return the trailing ``overlap`` words of ``text`` joined by single spaces."""

    words = text.split()
    if overlap <= 0 or not words:
        return ""
    return " ".join(words[-min(overlap, len(words)) :])


@dataclass(frozen=True)
class ChunkingConfig:
    """Chunk budget in estimated tokens and overlap in words."""

    chunk_size: int = 800
    overlap: int = 50

    def __post_init__(self) -> None:
        if self.chunk_size <= 0 or self.overlap <= 0:
            raise ConfigurationError(
                f"chunk_size and overlap must be positive (got {self.chunk_size}, {self.overlap})"
            )
        if self.overlap >= self.chunk_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )


class _ChunkBuffer:
    """Running chunk under construction for a single ``chunk_text`` call."""

    def __init__(self, page_number: int, section_title: str, overlap: int) -> None:
        self._page_number = page_number
        self._section_title = section_title
        self._overlap = overlap
        self._parts: List[str] = []
        self._fresh = False
        self.tokens = 0
        self.chunks: List[Chunk] = []

    @property
    def has_content(self) -> bool:
        # An overlap seed alone never forces a flush.
        return self._fresh

    def add(self, text: str, tokens: int, separator: str) -> None:
        self._parts.append(text)
        if not text.endswith(separator):
            self._parts.append(separator)
        self.tokens += tokens
        self._fresh = True

    def flush(self, *, seed: bool) -> None:
        raw = "".join(self._parts)
        content = raw.strip()
        if content:
            self.chunks.append(
                Chunk(
                    content=content,
                    page_number=self._page_number,
                    chunk_index=len(self.chunks),
                    section_title=self._section_title,
                )
            )
        self._parts = []
        self._fresh = False
        self.tokens = 0
        if seed:
            suffix = overlap_suffix(raw, self._overlap)
            if suffix:
                self._parts = [suffix, " "]
                self.tokens = estimate_tokens(suffix)

    def finish(self) -> List[Chunk]:
        if self._fresh:
            self.flush(seed=False)
        return self.chunks


class TextChunker:
    """Splits page text into overlapping, paragraph and sentence aware chunks."""

    _logger = get_logger("chunker")

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self._config = config or ChunkingConfig()

    @property
    def config(self) -> ChunkingConfig:
        return self._config

    def chunk_text(self, text: str, page_number: int, section_title: str = "") -> List[Chunk]:
        if not text or not text.strip():
            return []
        limit = self._config.chunk_size
        buffer = _ChunkBuffer(page_number, section_title, self._config.overlap)

        for paragraph in split_paragraphs(text):
            paragraph_tokens = estimate_tokens(paragraph)
            if paragraph_tokens > limit:
                if buffer.has_content:
                    buffer.flush(seed=False)
                for sentence in split_sentences(paragraph):
                    sentence_tokens = estimate_tokens(sentence)
                    if buffer.has_content and buffer.tokens + sentence_tokens > limit:
                        buffer.flush(seed=True)
                    buffer.add(sentence, sentence_tokens, " ")
                continue

            if buffer.has_content and buffer.tokens + paragraph_tokens > limit:
                buffer.flush(seed=True)
            buffer.add(paragraph, paragraph_tokens, "\n\n")

        return buffer.finish()

    def chunk_pages(self, pages: Iterable[PageText], section_title: str = "") -> List[Chunk]:
        """Chunk every page independently; overlap never crosses a page boundary."""

        start = time.perf_counter()
        chunks: List[Chunk] = []
        page_count = 0
        for page in pages:
            page_count += 1
            chunks.extend(self.chunk_text(page.text, page.page_number, section_title))
        duration = time.perf_counter() - start
        PipelineMetrics.observe_chunking(duration, len(chunks))
        self._logger.info(
            "chunking.complete",
            page_count=page_count,
            chunk_count=len(chunks),
            duration_seconds=duration,
        )
        return chunks


def chunk_text(
    text: str,
    page_number: int,
    section_title: str = "",
    chunk_size: int = 800,
    overlap: int = 50,
) -> Sequence[Chunk]:
    """Convenience helper for tests and ad-hoc chunking."""

    return TextChunker(ChunkingConfig(chunk_size=chunk_size, overlap=overlap)).chunk_text(
        text, page_number, section_title
    )
