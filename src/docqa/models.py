"""Shared domain models used across the DocQA pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PageText:
    """One page of extracted document text."""

    page_number: int
    text: str


@dataclass(frozen=True)
class Chunk:
    """Overlapping slice of a page's text prepared for embedding."""

    content: str
    page_number: int
    chunk_index: int
    section_title: str = ""


@dataclass(frozen=True)
class IndexedChunk:
    """Chunk with identity and embedding, as stored in the search index."""

    id: str
    document_id: str
    document_title: str
    content: str
    page_number: int
    chunk_index: int
    embedding: Tuple[float, ...]
    section_title: str = ""


@dataclass(frozen=True)
class RetrievedResult:
    """Normalized hit returned by the retrieval engine."""

    chunk_id: str
    document_id: str
    document_title: str
    content: str
    page_number: int
    score: float
    relevance_score: float
    section_title: str = ""


@dataclass(frozen=True)
class Citation:
    """User-facing pointer back to the chunk supporting an answer."""

    document_title: str
    page_number: int
    excerpt: str
    section_title: str = ""


@dataclass(frozen=True)
class AlternativeAnswer:
    text: str
    confidence_score: float


@dataclass(frozen=True)
class Answer:
    """Grounded answer produced by the synthesizer."""

    text: str
    confidence_score: float
    found_in_documents: bool
    citations: Sequence[Citation] = ()
    alternatives: Sequence[AlternativeAnswer] = ()


class ProcessingState(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class DocumentStatus:
    """Lifecycle record kept by the status store for one uploaded document."""

    document_id: str
    file_name: str
    blob_path: str
    status: ProcessingState = ProcessingState.UPLOADED
    uploaded_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None
    page_count: int | None = None
    chunk_count: int | None = None
    error_message: str | None = None
    error_step: str | None = None
    error_attempt_count: int | None = None
    last_attempt_at: datetime | None = None

    @property
    def title(self) -> str:
        stem, _, _ = self.file_name.rpartition(".")
        return stem or self.file_name


@dataclass(frozen=True)
class StoreOutcome:
    """Result of deleting a document from one backing store."""

    store: str
    succeeded: bool
    error: str | None = None


@dataclass(frozen=True)
class DeletionResult:
    """Per-store report of a best-effort document deletion."""

    document_id: str
    overall_success: bool
    deleted_chunks: bool
    deleted_blob: bool
    deleted_status: bool
    errors: Sequence[str] = ()
    message: str = ""
