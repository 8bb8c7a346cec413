"""Embedding gateway and search index."""

from .index import ChromaSearchIndex, FieldSpec, IndexSchema, SearchHit, SearchIndex, build_index_schema, build_search_index
from .service import EmbeddingConfig, EmbeddingGateway, HashEmbeddings, build_embedding_client, build_embedding_gateway

__all__ = [
    "ChromaSearchIndex",
    "EmbeddingConfig",
    "EmbeddingGateway",
    "FieldSpec",
    "HashEmbeddings",
    "IndexSchema",
    "SearchHit",
    "SearchIndex",
    "build_embedding_client",
    "build_embedding_gateway",
    "build_index_schema",
    "build_search_index",
]
