"""Re-ranking: reduce retrieved candidates to the chunks shown to the generator."""

from __future__ import annotations

import re
from typing import List, Protocol, Sequence

from docqa.models import RetrievedResult

_WORD = re.compile(r"\w+")


class Reranker(Protocol):
    """Takes N candidates and returns the best K in descending relevance order."""

    def select_top_k(self, results: Sequence[RetrievedResult], k: int, *, query: str = "") -> List[RetrievedResult]:
        ...


class ScoreReranker:
    """Orders by retrieval score. Stable, so ties keep retrieval order."""

    def select_top_k(self, results: Sequence[RetrievedResult], k: int, *, query: str = "") -> List[RetrievedResult]:
        if k <= 0:
            return []
        return sorted(results, key=lambda result: result.score, reverse=True)[:k]


class LexicalReranker:
    """Orders by retrieval score blended with query term overlap."""

    def __init__(self, weight: float = 0.35) -> None:
        self._weight = min(max(weight, 0.0), 1.0)

    def select_top_k(self, results: Sequence[RetrievedResult], k: int, *, query: str = "") -> List[RetrievedResult]:
        if k <= 0:
            return []
        tokens = {word.lower() for word in _WORD.findall(query)}
        if not tokens:
            return ScoreReranker().select_top_k(results, k)

        def blended(result: RetrievedResult) -> float:
            lexical = _token_overlap_score(tokens, result.content)
            return (1.0 - self._weight) * result.score + self._weight * lexical

        return sorted(results, key=blended, reverse=True)[:k]


def _token_overlap_score(query_tokens: set[str], text: str) -> float:
    tokens = {word.lower() for word in _WORD.findall(text)}
    if not tokens:
        return 0.0
    overlap = len(query_tokens.intersection(tokens))
    return overlap / max(len(query_tokens), 1)
