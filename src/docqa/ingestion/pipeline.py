"""Document ingestion: extract pages, chunk, embed and index."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import List, Sequence

from docqa.embeddings.index import SearchIndex
from docqa.embeddings.service import EmbeddingGateway, Vector
from docqa.errors import IndexingError, StageFailure
from docqa.ingestion.chunker import TextChunker
from docqa.ingestion.extraction import PageExtractor
from docqa.metrics.observability import PipelineMetrics, get_logger
from docqa.models import Chunk, IndexedChunk

STAGE_EXTRACTION = "text_extraction"
STAGE_CHUNKING = "chunking"
STAGE_EMBEDDING = "embedding_generation"
STAGE_INDEXING = "indexing"


@dataclass(frozen=True)
class IngestionResult:
    """Outcome of one ingestion attempt; ``failure`` is set when it did not complete."""

    document_id: str
    page_count: int = 0
    chunk_count: int = 0
    failure: StageFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def build_indexed_chunks(
    document_id: str,
    document_title: str,
    chunks: Sequence[Chunk],
    vectors: Sequence[Vector],
) -> List[IndexedChunk]:
    if len(chunks) != len(vectors):
        raise ValueError(f"Got {len(vectors)} embeddings for {len(chunks)} chunks")
    return [
        IndexedChunk(
            id=str(uuid.uuid4()),
            document_id=document_id,
            document_title=document_title,
            content=chunk.content,
            page_number=chunk.page_number,
            chunk_index=chunk.chunk_index,
            embedding=tuple(vector),
            section_title=chunk.section_title,
        )
        for chunk, vector in zip(chunks, vectors)
    ]


class IngestionPipeline:
    """Runs one document through extraction, chunking, embedding and indexing.

    Failures are returned as a tagged :class:`IngestionResult` naming the stage
    that failed. The pipeline never retries; re-processing is the caller's call.
    """

    def __init__(
        self,
        extractor: PageExtractor,
        chunker: TextChunker,
        gateway: EmbeddingGateway,
        index: SearchIndex,
        *,
        timeout_seconds: float | None = 900.0,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._gateway = gateway
        self._index = index
        self._timeout = timeout_seconds
        self._logger = get_logger("ingestion")

    async def process(self, document_id: str, title: str, data: bytes, *, file_name: str = "document.pdf") -> IngestionResult:
        progress = {"stage": STAGE_EXTRACTION, "page_count": 0}
        start = time.perf_counter()
        try:
            if self._timeout is None:
                chunk_count = await self._run(document_id, title, data, file_name, progress)
            else:
                chunk_count = await asyncio.wait_for(
                    self._run(document_id, title, data, file_name, progress), self._timeout
                )
        except asyncio.TimeoutError:
            failure = StageFailure(
                stage=progress["stage"],
                message=f"ingestion exceeded {self._timeout:.1f}s deadline",
            )
            return self._failed(document_id, failure, progress["page_count"])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failure = StageFailure.from_exception(exc, default_stage=progress["stage"])
            return self._failed(document_id, failure, progress["page_count"])

        self._logger.info(
            "ingestion.complete",
            document_id=document_id,
            page_count=progress["page_count"],
            chunk_count=chunk_count,
            duration_seconds=time.perf_counter() - start,
        )
        return IngestionResult(document_id=document_id, page_count=progress["page_count"], chunk_count=chunk_count)

    async def _run(self, document_id: str, title: str, data: bytes, file_name: str, progress: dict) -> int:
        pages = await self._extractor.extract(data, file_name=file_name)
        progress["page_count"] = len(pages)

        progress["stage"] = STAGE_CHUNKING
        chunks = self._chunker.chunk_pages(pages)
        if not chunks:
            self._logger.warning("ingestion.no_chunks", document_id=document_id, page_count=len(pages))
            return 0

        progress["stage"] = STAGE_EMBEDDING
        vectors = await self._gateway.embed_batch([chunk.content for chunk in chunks])

        progress["stage"] = STAGE_INDEXING
        indexed = build_indexed_chunks(document_id, title, chunks, vectors)
        try:
            # re-processing replaces chunks from earlier attempts
            await asyncio.to_thread(self._index.delete_by_document, document_id)
            await asyncio.to_thread(self._index.upsert, indexed)
        except Exception as exc:
            raise IndexingError(f"Failed to index chunks for {document_id}: {exc}") from exc
        return len(indexed)

    def _failed(self, document_id: str, failure: StageFailure, page_count: int) -> IngestionResult:
        PipelineMetrics.record_failure(failure.stage)
        self._logger.error(
            "ingestion.failed",
            document_id=document_id,
            stage=failure.stage,
            detail=failure.message,
        )
        return IngestionResult(document_id=document_id, page_count=page_count, failure=failure)
