"""Retrieval components."""

from .rerank import LexicalReranker, Reranker, ScoreReranker
from .service import RetrievalEngine

__all__ = ["LexicalReranker", "Reranker", "RetrievalEngine", "ScoreReranker"]
