from __future__ import annotations

import asyncio
from uuid import uuid4

import chromadb
import pytest

from docqa.config import Settings
from docqa.embeddings.index import ChromaSearchIndex, SearchHit, build_index_schema
from docqa.embeddings.service import HashEmbeddings
from docqa.errors import RetrievalError
from docqa.models import IndexedChunk
from docqa.retrieval.service import RetrievalEngine

DIM = 16
EMBEDDER = HashEmbeddings(dim=DIM)


def _index() -> ChromaSearchIndex:
    settings = Settings(environment="test", embedding_dim=DIM, index_name=f"test-{uuid4().hex[:12]}")
    index = ChromaSearchIndex(build_index_schema(settings), client=chromadb.EphemeralClient())
    index.create_if_absent()
    return index


def _mk(document_id: str, content: str, chunk_index: int = 0, page: int = 1) -> IndexedChunk:
    return IndexedChunk(
        id=str(uuid4()),
        document_id=document_id,
        document_title=f"Title {document_id}",
        content=content,
        page_number=page,
        chunk_index=chunk_index,
        embedding=tuple(EMBEDDER.embed_query(content)),
    )


def _populated() -> ChromaSearchIndex:
    index = _index()
    index.upsert(
        [
            _mk("d1", "The warranty period is two years from purchase.", 0, 1),
            _mk("d1", "Returns are accepted within thirty days.", 1, 2),
            _mk("d2", "Shipping takes five business days.", 0, 1),
            _mk("d3", "Batteries are not covered by the guarantee.", 0, 4),
        ]
    )
    return index


def test_upsert_and_count():
    index = _populated()
    assert index.count() == 4


def test_hybrid_query_ranks_keyword_match_first():
    index = _populated()
    query = "warranty period"
    hits = index.hybrid_query(query, EMBEDDER.embed_query(query), top_k=3)
    assert 0 < len(hits) <= 3
    assert "warranty period" in hits[0].fields["content"]
    scores = [hit.score for hit in hits]
    assert scores == sorted(scores, reverse=True)


def test_hybrid_query_filter_matches_any_listed_document():
    index = _populated()
    query = "days"
    hits = index.hybrid_query(query, EMBEDDER.embed_query(query), top_k=10, document_ids=["d1", "d3"])
    assert {hit.fields["document_id"] for hit in hits} == {"d1", "d3"}


def test_hybrid_query_with_zero_top_k_is_empty():
    index = _populated()
    assert index.hybrid_query("anything", EMBEDDER.embed_query("anything"), top_k=0) == []


def test_delete_by_document_removes_only_that_document():
    index = _populated()
    assert index.delete_by_document("d1") == 2
    assert index.count() == 2
    assert index.delete_by_document("d1") == 0


def test_recreate_drops_existing_chunks():
    index = _populated()
    index.recreate()
    assert index.count() == 0


def test_schema_describe_lists_fields_and_vector_profile():
    settings = Settings(environment="test", embedding_dim=DIM, index_name="document-chunks")
    text = build_index_schema(settings).describe()
    assert "Index Name: document-chunks" in text
    assert "Name: id, Type: string, IsKey: True" in text
    assert f"Vector Dimensions: {DIM}" in text
    assert "Algorithm: hnsw, Metric: cosine" in text


def test_retrieval_engine_normalizes_hits():
    engine = RetrievalEngine(_populated())
    query = "warranty period"
    results = asyncio.run(engine.hybrid_search_filtered(query, EMBEDDER.embed_query(query), ["d1"], max_results=5))
    assert results
    top = results[0]
    assert top.document_id == "d1"
    assert top.document_title == "Title d1"
    assert top.page_number == 1
    assert top.score == top.relevance_score
    assert all(result.document_id == "d1" for result in results)


def test_retrieval_engine_empty_filter_searches_everything():
    engine = RetrievalEngine(_populated())
    query = "days"
    results = asyncio.run(engine.hybrid_search_filtered(query, EMBEDDER.embed_query(query), [], max_results=10))
    assert {result.document_id for result in results} == {"d1", "d2", "d3"}


class BrokenIndex:
    schema = build_index_schema(Settings(environment="test"))

    def hybrid_query(self, *args, **kwargs):
        raise ConnectionError("index unreachable")


def test_retrieval_engine_wraps_index_failures():
    engine = RetrievalEngine(BrokenIndex())
    with pytest.raises(RetrievalError) as excinfo:
        asyncio.run(engine.hybrid_search("q", [0.0] * DIM))
    assert excinfo.value.stage == "retrieval"
    assert "index unreachable" in excinfo.value.message


class RecordingIndex:
    schema = build_index_schema(Settings(environment="test"))

    def __init__(self) -> None:
        self.document_ids = None

    def hybrid_query(self, query_text, query_vector, *, top_k, document_ids=None):
        self.document_ids = document_ids
        hits = [
            SearchHit(id=f"c-{doc}", fields={"document_id": doc, "content": doc, "page_number": 1}, score=0.5)
            for doc in ("A", "B", "C")
        ]
        return [hit for hit in hits if not document_ids or hit.fields["document_id"] in document_ids][:top_k]


def test_filtered_search_passes_id_list_to_index():
    index = RecordingIndex()
    results = asyncio.run(RetrievalEngine(index).hybrid_search_filtered("q", [0.0] * DIM, ["A", "B"]))
    assert index.document_ids == ["A", "B"]
    assert {result.document_id for result in results} == {"A", "B"}


def _filler(count: int) -> list[IndexedChunk]:
    return [_mk("filler", f"The report number {n} covers the quarterly figures.", n) for n in range(count)]


def test_keyword_match_is_found_among_common_word_filler():
    index = _index()
    target = _mk("d9", "the zebra crossings were repainted.")
    index.upsert(_filler(40) + [target])
    query = "the zebra"
    hits = index.hybrid_query(query, EMBEDDER.embed_query(query), top_k=5)
    assert target.id in [hit.id for hit in hits]


def test_keyword_match_ignores_case():
    index = _index()
    target = _mk("d9", "Warranty lasts two years.")
    index.upsert(_filler(40) + [target])
    query = "warranty"
    hits = index.hybrid_query(query, EMBEDDER.embed_query(query), top_k=5)
    assert target.id in [hit.id for hit in hits]
