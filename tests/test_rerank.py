from __future__ import annotations

from docqa.models import RetrievedResult
from docqa.retrieval.rerank import LexicalReranker, ScoreReranker


def _result(chunk_id: str, score: float, content: str = "text") -> RetrievedResult:
    return RetrievedResult(
        chunk_id=chunk_id,
        document_id="doc",
        document_title="Doc",
        content=content,
        page_number=1,
        score=score,
        relevance_score=score,
    )


def test_score_reranker_orders_descending_and_truncates():
    results = [_result("a", 0.2), _result("b", 0.9), _result("c", 0.5)]
    selected = ScoreReranker().select_top_k(results, 2)
    assert [result.chunk_id for result in selected] == ["b", "c"]


def test_score_reranker_length_is_min_of_k_and_n():
    results = [_result("a", 0.2), _result("b", 0.9)]
    reranker = ScoreReranker()
    assert len(reranker.select_top_k(results, 7)) == 2
    assert reranker.select_top_k(results, 0) == []
    assert reranker.select_top_k([], 3) == []


def test_score_reranker_is_idempotent_and_stable_on_ties():
    results = [_result("a", 0.5), _result("b", 0.5), _result("c", 0.7)]
    reranker = ScoreReranker()
    once = reranker.select_top_k(results, 3)
    assert [result.chunk_id for result in once] == ["c", "a", "b"]
    assert reranker.select_top_k(once, 3) == once


def test_lexical_reranker_prefers_term_overlap_without_touching_scores():
    results = [
        _result("a", 0.60, "Shipping takes five days."),
        _result("b", 0.55, "The warranty period is two years."),
    ]
    selected = LexicalReranker(weight=0.5).select_top_k(results, 2, query="warranty period")
    assert [result.chunk_id for result in selected] == ["b", "a"]
    assert selected[0].score == 0.55
    assert selected[0].relevance_score == 0.55


def test_lexical_reranker_without_query_falls_back_to_score():
    results = [_result("a", 0.1), _result("b", 0.3)]
    selected = LexicalReranker().select_top_k(results, 1)
    assert [result.chunk_id for result in selected] == ["b"]
