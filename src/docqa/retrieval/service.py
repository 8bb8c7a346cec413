"""Hybrid retrieval over the search index."""

from __future__ import annotations

import asyncio
import time
from typing import Any, List, Mapping, Sequence

from docqa.embeddings.index import SearchHit, SearchIndex
from docqa.errors import RetrievalError
from docqa.metrics.observability import PipelineMetrics, get_logger
from docqa.models import RetrievedResult


class RetrievalEngine:
    """Issues hybrid (keyword + vector) queries and normalizes the hits.

    Results keep the order the index returns them in; re-sorting is the
    re-ranker's job.
    """

    def __init__(self, index: SearchIndex) -> None:
        self._index = index
        self._logger = get_logger("retrieval")

    async def hybrid_search(
        self,
        query_text: str,
        query_vector: Sequence[float],
        max_results: int = 20,
    ) -> List[RetrievedResult]:
        return await self._search(query_text, query_vector, None, max_results)

    async def hybrid_search_filtered(
        self,
        query_text: str,
        query_vector: Sequence[float],
        document_ids: Sequence[str] | None,
        max_results: int = 20,
    ) -> List[RetrievedResult]:
        """Search chunks whose document id equals any of ``document_ids``.

        An empty or missing id list searches every document.
        """

        return await self._search(query_text, query_vector, list(document_ids or []) or None, max_results)

    async def _search(
        self,
        query_text: str,
        query_vector: Sequence[float],
        document_ids: Sequence[str] | None,
        max_results: int,
    ) -> List[RetrievedResult]:
        start = time.perf_counter()
        try:
            hits = await asyncio.to_thread(
                self._index.hybrid_query,
                query_text,
                query_vector,
                top_k=max_results,
                document_ids=document_ids,
            )
        except Exception as exc:
            PipelineMetrics.record_failure(RetrievalError.stage)
            raise RetrievalError(f"Error performing hybrid search: {exc}") from exc
        results = [self._normalize(hit) for hit in hits]
        duration = time.perf_counter() - start
        PipelineMetrics.observe_retrieval(duration, len(results))
        self._logger.info(
            "retrieval.complete",
            result_count=len(results),
            filtered=bool(document_ids),
            document_count=len(document_ids or ()),
            duration_seconds=duration,
        )
        return results

    def _normalize(self, hit: SearchHit) -> RetrievedResult:
        schema = self._index.schema
        fields: Mapping[str, Any] = hit.fields
        score = float(hit.score or 0.0)
        return RetrievedResult(
            chunk_id=str(fields.get(schema.field_name("id"), hit.id)),
            document_id=str(fields.get(schema.field_name("document_id"), "")),
            document_title=str(fields.get(schema.field_name("document_title"), "")),
            content=str(fields.get(schema.field_name("content"), "")),
            page_number=int(fields.get(schema.field_name("page_number"), 0) or 0),
            section_title=str(fields.get(schema.field_name("section_title"), "") or ""),
            score=score,
            relevance_score=score,
        )
