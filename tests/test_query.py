from __future__ import annotations

import asyncio
from uuid import uuid4

import chromadb
import pytest

from docqa.config import Settings
from docqa.embeddings.index import ChromaSearchIndex, build_index_schema
from docqa.embeddings.service import EmbeddingConfig, EmbeddingGateway, HashEmbeddings
from docqa.errors import DeadlineExceededError
from docqa.ingestion.pipeline import build_indexed_chunks
from docqa.models import Chunk
from docqa.retrieval import RetrievalEngine
from docqa.services.generation import TemplateGenerator
from docqa.services.query import QueryConfig, QueryService
from docqa.services.synthesis import AnswerSynthesizer

DIM = 16
EMBEDDER = HashEmbeddings(dim=DIM)


class CountingGenerator(TemplateGenerator):
    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, *, system_prompt: str, user_prompt: str) -> str:
        self.calls += 1
        return await super().generate(system_prompt=system_prompt, user_prompt=user_prompt)


class SlowGateway:
    async def embed(self, text: str):
        await asyncio.sleep(1.0)
        return (0.0,) * DIM


def _index_documents(index: ChromaSearchIndex, document_id: str, title: str, texts: list[str]) -> None:
    chunks = [Chunk(text, page_number=position + 1, chunk_index=0) for position, text in enumerate(texts)]
    vectors = [tuple(EMBEDDER.embed_query(text)) for text in texts]
    index.upsert(build_indexed_chunks(document_id, title, chunks, vectors))


def _service(config: QueryConfig | None = None):
    settings = Settings(environment="test", embedding_dim=DIM, index_name=f"query-{uuid4().hex[:12]}")
    index = ChromaSearchIndex(build_index_schema(settings), client=chromadb.EphemeralClient())
    _index_documents(
        index,
        "manual",
        "Product Manual",
        ["The warranty period is two years from purchase.", "Repairs are free during the warranty period."],
    )
    _index_documents(index, "faq", "Shipping FAQ", ["Shipping takes five business days."])
    generator = CountingGenerator()
    gateway = EmbeddingGateway(EMBEDDER, EmbeddingConfig(dim=DIM))
    service = QueryService(gateway, RetrievalEngine(index), AnswerSynthesizer(generator), config=config)
    return service, generator


def test_ask_answers_from_selected_documents():
    service, generator = _service()
    answer = asyncio.run(service.ask("How long is the warranty period?", ["manual"]))
    assert generator.calls == 1
    assert answer.found_in_documents is True
    assert answer.citations
    assert {citation.document_title for citation in answer.citations} == {"Product Manual"}
    assert "Product Manual" in answer.text


def test_ask_limits_context_to_max_chunks():
    service, _ = _service()
    answer = asyncio.run(service.ask("warranty period", ["manual", "faq"], max_chunks=1))
    assert len(answer.citations) == 1


def test_ask_without_matching_documents_skips_generation():
    service, generator = _service()
    answer = asyncio.run(service.ask("warranty period", ["unknown-document"]))
    assert generator.calls == 0
    assert answer.found_in_documents is False
    assert answer.confidence_score == 0.0


def test_search_documents_returns_ranked_results():
    service, generator = _service()
    results = asyncio.run(service.search_documents("Shipping", max_results=5))
    assert results
    assert results[0].document_id == "faq"
    assert generator.calls == 0


def test_ask_raises_when_deadline_expires():
    settings = Settings(environment="test", embedding_dim=DIM, index_name=f"query-{uuid4().hex[:12]}")
    index = ChromaSearchIndex(build_index_schema(settings), client=chromadb.EphemeralClient())
    service = QueryService(
        SlowGateway(),
        RetrievalEngine(index),
        AnswerSynthesizer(TemplateGenerator()),
        config=QueryConfig(timeout_seconds=0.05),
    )
    with pytest.raises(DeadlineExceededError) as excinfo:
        asyncio.run(service.ask("anything", ["manual"]))
    assert excinfo.value.stage == "query"
