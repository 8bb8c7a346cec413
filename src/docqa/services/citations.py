"""Citation construction and display helpers."""

from __future__ import annotations

from typing import List, Sequence

from docqa.models import Citation, RetrievedResult

TRUNCATION_MARKER = "..."


def build_citations(results: Sequence[RetrievedResult], max_excerpt_length: int = 200) -> List[Citation]:
    """One citation per result, in input order.

    Excerpts are cut on character count and may end mid-word.
    """

    citations: List[Citation] = []
    for result in results:
        excerpt = result.content
        if len(excerpt) > max_excerpt_length:
            excerpt = excerpt[:max_excerpt_length] + TRUNCATION_MARKER
        citations.append(
            Citation(
                document_title=result.document_title,
                page_number=result.page_number,
                excerpt=excerpt,
                section_title=result.section_title,
            )
        )
    return citations


def format_citations_for_display(citations: Sequence[Citation]) -> str:
    if not citations:
        return "No citations available."
    formatted: List[str] = []
    for index, citation in enumerate(citations, start=1):
        text = f"[{index}] {citation.document_title}, Page {citation.page_number}"
        if citation.section_title.strip():
            text += f", Section: {citation.section_title}"
        text += f'\n    "{citation.excerpt}"'
        formatted.append(text)
    return "\n\n".join(formatted)


def append_inline_citations(answer_text: str, citations: Sequence[Citation]) -> str:
    if not citations:
        return answer_text
    numbers = ", ".join(f"[{index}]" for index in range(1, len(citations) + 1))
    return f"{answer_text} {numbers}"
