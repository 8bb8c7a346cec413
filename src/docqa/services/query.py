"""Query orchestration: embed, search, re-rank, synthesize."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import List, Sequence

from docqa.embeddings.service import EmbeddingGateway
from docqa.errors import DeadlineExceededError
from docqa.metrics.observability import get_logger
from docqa.models import Answer, RetrievedResult
from docqa.retrieval.rerank import Reranker, ScoreReranker
from docqa.retrieval.service import RetrievalEngine
from docqa.services.synthesis import AnswerSynthesizer


@dataclass(frozen=True)
class QueryConfig:
    """Retrieval breadth and answer context size."""

    max_chunks_to_retrieve: int = 20
    top_chunks_for_answer: int = 7
    timeout_seconds: float | None = 120.0


class QueryService:
    """Answers questions against indexed documents."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        engine: RetrievalEngine,
        synthesizer: AnswerSynthesizer,
        reranker: Reranker | None = None,
        config: QueryConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._engine = engine
        self._synthesizer = synthesizer
        self._reranker = reranker or ScoreReranker()
        self._config = config or QueryConfig()
        self._logger = get_logger("query")

    async def ask(
        self,
        question: str,
        document_ids: Sequence[str] | None = None,
        *,
        max_chunks: int | None = None,
    ) -> Answer:
        """Answer ``question`` within the configured end-to-end deadline."""

        return await self._with_deadline(self._ask(question, document_ids, max_chunks), stage="query")

    async def search_documents(
        self,
        query: str,
        max_results: int = 10,
        document_ids: Sequence[str] | None = None,
    ) -> List[RetrievedResult]:
        """Run hybrid search only, without answer generation."""

        return await self._with_deadline(self._retrieve(query, document_ids, max_results), stage="search")

    async def _ask(self, question: str, document_ids: Sequence[str] | None, max_chunks: int | None) -> Answer:
        start = time.perf_counter()
        candidates = await self._retrieve(question, document_ids, self._config.max_chunks_to_retrieve)
        top_k = max_chunks or self._config.top_chunks_for_answer
        selected = self._reranker.select_top_k(candidates, top_k, query=question)
        answer = await self._synthesizer.generate_answer(question, selected)
        self._logger.info(
            "query.complete",
            candidate_count=len(candidates),
            selected_count=len(selected),
            confidence=answer.confidence_score,
            found_in_documents=answer.found_in_documents,
            duration_seconds=time.perf_counter() - start,
        )
        return answer

    async def _retrieve(
        self,
        query: str,
        document_ids: Sequence[str] | None,
        max_results: int,
    ) -> List[RetrievedResult]:
        vector = await self._gateway.embed(query)
        if document_ids:
            return await self._engine.hybrid_search_filtered(query, vector, document_ids, max_results)
        return await self._engine.hybrid_search(query, vector, max_results)

    async def _with_deadline(self, coro, *, stage: str):
        timeout = self._config.timeout_seconds
        if timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout)
        except asyncio.TimeoutError as exc:
            self._logger.error("query.deadline_exceeded", stage=stage, timeout_seconds=timeout)
            raise DeadlineExceededError(f"{stage} exceeded {timeout:.1f}s deadline", stage=stage) from exc
