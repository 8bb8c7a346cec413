"""Document ingestion: extraction, chunking and indexing."""

from .chunker import ChunkingConfig, TextChunker, chunk_text, estimate_tokens
from .extraction import PageExtractor, PyPDFPageExtractor
from .pipeline import IngestionPipeline, IngestionResult, build_indexed_chunks

__all__ = [
    "ChunkingConfig",
    "IngestionPipeline",
    "IngestionResult",
    "PageExtractor",
    "PyPDFPageExtractor",
    "TextChunker",
    "build_indexed_chunks",
    "chunk_text",
    "estimate_tokens",
]
