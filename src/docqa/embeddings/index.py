"""Search index collaborator: schema description and a Chroma-backed hybrid index."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Protocol, Sequence

import chromadb
from chromadb.api import ClientAPI
from rank_bm25 import BM25Okapi

from docqa.config import Settings
from docqa.metrics.observability import get_logger
from docqa.models import IndexedChunk

_WORD = re.compile(r"\w+")


@dataclass(frozen=True)
class FieldSpec:
    """One field of the index schema."""

    role: str
    name: str
    type: str
    key: bool = False
    searchable: bool = False
    filterable: bool = False
    vector_dimensions: int | None = None


@dataclass(frozen=True)
class IndexSchema:
    """Index layout built once from settings and handed to the index."""

    name: str
    fields: Sequence[FieldSpec]
    vector_profile: str = "vector-profile"
    vector_algorithm: str = "hnsw"
    vector_metric: str = "cosine"

    def field_name(self, role: str) -> str:
        for entry in self.fields:
            if entry.role == role:
                return entry.name
        raise KeyError(role)

    @property
    def vector_dimensions(self) -> int | None:
        for entry in self.fields:
            if entry.vector_dimensions is not None:
                return entry.vector_dimensions
        return None

    def describe(self) -> str:
        lines = [f"Index Name: {self.name}", "", "Fields:"]
        for entry in self.fields:
            lines.append(
                f"  - Name: {entry.name}, Type: {entry.type}, IsKey: {entry.key}, "
                f"IsSearchable: {entry.searchable}, IsFilterable: {entry.filterable}"
            )
            if entry.vector_dimensions is not None:
                lines.append(f"    Vector Dimensions: {entry.vector_dimensions}")
                lines.append(f"    Vector Profile: {self.vector_profile}")
        lines.append("")
        lines.append("Vector Search Configuration:")
        lines.append(f"  Profile: {self.vector_profile}, Algorithm: {self.vector_algorithm}, Metric: {self.vector_metric}")
        return "\n".join(lines)


def build_index_schema(settings: Settings) -> IndexSchema:
    return IndexSchema(
        name=settings.index_name,
        fields=(
            FieldSpec("id", "id", "string", key=True, filterable=True),
            FieldSpec("document_id", settings.index_document_id_field, "string", filterable=True),
            FieldSpec("document_title", "document_title", "string", searchable=True),
            FieldSpec("content", settings.index_content_field, "string", searchable=True),
            FieldSpec("page_number", "page_number", "int32", filterable=True),
            FieldSpec("section_title", "section_title", "string", searchable=True),
            FieldSpec("chunk_index", "chunk_index", "int32"),
            FieldSpec("embedding", "embedding", "collection(single)", vector_dimensions=settings.embedding_dim),
        ),
    )


@dataclass(frozen=True)
class SearchHit:
    """Raw index hit: stored field values keyed by field name, plus score."""

    id: str
    fields: Mapping[str, Any]
    score: float | None = None


class SearchIndex(Protocol):
    """Contract of the external hybrid search index."""

    schema: IndexSchema

    def create_if_absent(self) -> None:
        ...

    def recreate(self) -> None:
        ...

    def upsert(self, chunks: Sequence[IndexedChunk]) -> None:
        ...

    def delete_by_document(self, document_id: str) -> int:
        ...

    def hybrid_query(
        self,
        query_text: str,
        query_vector: Sequence[float],
        *,
        top_k: int,
        document_ids: Sequence[str] | None = None,
    ) -> Sequence[SearchHit]:
        ...

    def count(self) -> int:
        ...


class ChromaSearchIndex:
    """Hybrid index over a Chroma collection.

    Vector candidates come from nearest-neighbour search on the stored
    embeddings and keyword candidates from a ``$contains`` match on the content.
    Both are scored as ``(1 - w) * cosine + w * term_overlap`` and returned as
    one ranked list.
    """

    _logger = get_logger("index")

    def __init__(
        self,
        schema: IndexSchema,
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
        lexical_weight: float = 0.35,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self.schema = schema
        self._lexical_weight = min(max(lexical_weight, 0.0), 1.0)
        self._collection = None

    @property
    def _col(self):
        if self._collection is None:
            self.create_if_absent()
        return self._collection

    def create_if_absent(self) -> None:
        self._collection = self._client.get_or_create_collection(
            name=self.schema.name,
            metadata={"hnsw:space": self.schema.vector_metric},
        )

    def recreate(self) -> None:
        if self.schema.name in self._collection_names():
            self._client.delete_collection(self.schema.name)
            self._logger.info("index.deleted", index=self.schema.name)
        self._collection = self._client.create_collection(
            name=self.schema.name,
            metadata={"hnsw:space": self.schema.vector_metric},
        )
        self._logger.info("index.created", index=self.schema.name, dimensions=self.schema.vector_dimensions)

    def upsert(self, chunks: Sequence[IndexedChunk]) -> None:
        if not chunks:
            return
        self._col.upsert(
            ids=[chunk.id for chunk in chunks],
            documents=[chunk.content for chunk in chunks],
            embeddings=[list(chunk.embedding) for chunk in chunks],
            metadatas=[self._serialize(chunk) for chunk in chunks],
        )

    def delete_by_document(self, document_id: str) -> int:
        where = {self.schema.field_name("document_id"): document_id}
        existing = self._col.get(where=where, include=["metadatas"])
        ids = list(existing.get("ids") or [])
        if ids:
            self._col.delete(ids=ids)
        return len(ids)

    def hybrid_query(
        self,
        query_text: str,
        query_vector: Sequence[float],
        *,
        top_k: int,
        document_ids: Sequence[str] | None = None,
    ) -> Sequence[SearchHit]:
        if top_k <= 0:
            return []
        where = self._document_filter(document_ids)
        query_tokens = _tokenize(query_text)
        candidates: Dict[str, MutableMapping[str, Any]] = {}

        vector_results = self._col.query(
            query_embeddings=[list(query_vector)],
            n_results=top_k,
            where=where,
            include=["documents", "metadatas", "distances"],
        )
        ids = _first(vector_results.get("ids"))
        documents = _first(vector_results.get("documents"))
        metadatas = _first(vector_results.get("metadatas"))
        distances = _first(vector_results.get("distances"))
        for position, chunk_id in enumerate(ids):
            distance = distances[position] if position < len(distances) else None
            candidates[chunk_id] = {
                "document": documents[position],
                "metadata": metadatas[position] or {},
                "similarity": 1.0 - float(distance) if distance is not None else 0.0,
            }

        # keyword leg: BM25 over the filtered corpus, best top_k after scoring
        lexical_scores: Dict[str, float] = {}
        if query_tokens:
            corpus = self._col.get(where=where, include=["documents", "metadatas", "embeddings"])
            corpus_ids = list(corpus.get("ids") or [])
            corpus_docs = list(corpus.get("documents") or [])
            corpus_meta = list(corpus.get("metadatas") or [])
            corpus_vectors = corpus.get("embeddings")
            lexical_scores = _bm25_scores(query_tokens, corpus_ids, corpus_docs)
            ranked = sorted(
                range(len(corpus_ids)),
                key=lambda position: lexical_scores.get(corpus_ids[position], 0.0),
                reverse=True,
            )
            for position in ranked[:top_k]:
                chunk_id = corpus_ids[position]
                if chunk_id in candidates or chunk_id not in lexical_scores:
                    continue
                vector = corpus_vectors[position] if corpus_vectors is not None else None
                candidates[chunk_id] = {
                    "document": corpus_docs[position],
                    "metadata": corpus_meta[position] or {},
                    "similarity": _cosine(query_vector, vector) if vector is not None else 0.0,
                }

        weight = self._lexical_weight
        hits: List[SearchHit] = []
        for chunk_id, candidate in candidates.items():
            score = (1.0 - weight) * candidate["similarity"] + weight * lexical_scores.get(chunk_id, 0.0)
            hits.append(SearchHit(id=chunk_id, fields=self._deserialize(chunk_id, candidate), score=score))
        hits.sort(key=lambda hit: hit.score or 0.0, reverse=True)
        return hits[:top_k]

    def count(self) -> int:
        return int(self._col.count())

    def _collection_names(self) -> List[str]:
        names: List[str] = []
        for item in self._client.list_collections():
            names.append(item if isinstance(item, str) else item.name)
        return names

    def _document_filter(self, document_ids: Sequence[str] | None) -> Dict[str, Any] | None:
        if not document_ids:
            return None
        return {self.schema.field_name("document_id"): {"$in": list(document_ids)}}

    def _serialize(self, chunk: IndexedChunk) -> Dict[str, Any]:
        name = self.schema.field_name
        return {
            name("document_id"): chunk.document_id,
            name("document_title"): chunk.document_title,
            name("page_number"): chunk.page_number,
            name("section_title"): chunk.section_title,
            name("chunk_index"): chunk.chunk_index,
        }

    def _deserialize(self, chunk_id: str, candidate: Mapping[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = dict(candidate["metadata"])
        fields[self.schema.field_name("id")] = chunk_id
        fields[self.schema.field_name("content")] = candidate["document"] or ""
        return fields


def _first(value: object) -> list:
    if isinstance(value, list) and value:
        inner = value[0]
        return list(inner) if inner is not None else []
    return []


def _tokenize(text: str) -> List[str]:
    return [word.lower() for word in _WORD.findall(text)]


def _bm25_scores(query_tokens: Sequence[str], ids: Sequence[str], documents: Sequence[str | None]) -> Dict[str, float]:
    """BM25 score per chunk id, scaled so the best match is 1.0. Non-matching chunks are left out."""

    corpus = [_tokenize(document or "") for document in documents]
    if not any(corpus):
        return {}
    raw = BM25Okapi(corpus).get_scores(list(query_tokens))
    best = max(float(score) for score in raw)
    if best <= 0.0:
        return {}
    return {chunk_id: float(score) / best for chunk_id, score in zip(ids, raw) if score > 0.0}


def _cosine(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(float(a) * float(b) for a, b in zip(left, right))
    norm = math.sqrt(sum(float(a) * float(a) for a in left)) * math.sqrt(sum(float(b) * float(b) for b in right))
    return dot / norm if norm else 0.0


def build_search_index(settings: Settings, *, client: ClientAPI | None = None) -> ChromaSearchIndex:
    if client is None and settings.chroma_host:
        client = chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port or 8000,
            ssl=settings.chroma_ssl,
        )
    return ChromaSearchIndex(
        build_index_schema(settings),
        client=client,
        persist_directory=None if client else settings.chroma_persist_dir,
        lexical_weight=settings.index_lexical_weight,
    )
