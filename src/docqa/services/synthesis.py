"""Grounded answer synthesis with heuristic confidence scoring."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Sequence

from docqa.errors import SynthesisError
from docqa.metrics.observability import PipelineMetrics, get_logger
from docqa.models import Answer, RetrievedResult
from docqa.services.citations import build_citations
from docqa.services.generation import GenerationBackend

SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based strictly on the provided document context.

IMPORTANT RULES:
1. ONLY use information from the provided context to answer questions
2. If the context doesn't contain enough information to answer, say so clearly
3. Include specific references to document titles and page numbers when citing information
4. Be concise but thorough
5. If you're uncertain, indicate your level of confidence
6. Never make up or infer information beyond what's in the context"""

USER_PROMPT_TEMPLATE = """Context from documents:
{context}

Question: {question}

Please provide a comprehensive answer based ONLY on the context above. If the answer is not in the context, clearly state that you don't have enough information."""

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class SynthesisConfig:
    """Prompts, phrase lists and scoring constants for the synthesizer."""

    system_prompt: str = SYSTEM_PROMPT
    user_prompt_template: str = USER_PROMPT_TEMPLATE
    no_context_text: str = "I couldn't find any relevant information in the documents to answer your question."
    hedging_phrases: tuple[str, ...] = (
        "i'm not sure",
        "i don't have enough information",
        "the context doesn't provide",
        "it's unclear",
        "might",
        "possibly",
        "perhaps",
    )
    not_found_phrases: tuple[str, ...] = (
        "don't have enough information",
        "not in the context",
        "doesn't contain",
        "cannot find",
        "no information",
        "not provided",
        "not mentioned",
    )
    short_answer_words: int = 20
    short_answer_penalty: float = 0.7
    hedging_penalty: float = 0.7
    max_excerpt_length: int = 200


def build_context(chunks: Sequence[RetrievedResult]) -> str:
    return CONTEXT_SEPARATOR.join(
        f"[Document: {chunk.document_title}, Page {chunk.page_number}]\n{chunk.content}" for chunk in chunks
    )


class AnswerSynthesizer:
    """Builds the grounded prompt, calls the generator and scores the reply.

    ``confidence_score`` and ``found_in_documents`` come from independent
    signals and may disagree: a low-confidence answer can still count as found.
    """

    def __init__(self, generator: GenerationBackend, config: SynthesisConfig | None = None) -> None:
        self._generator = generator
        self._config = config or SynthesisConfig()
        self._logger = get_logger("synthesis")

    @property
    def config(self) -> SynthesisConfig:
        return self._config

    async def generate_answer(self, question: str, chunks: Sequence[RetrievedResult]) -> Answer:
        if not chunks:
            self._logger.info("synthesis.no_context", question=question)
            return Answer(text=self._config.no_context_text, confidence_score=0.0, found_in_documents=False)

        user_prompt = self._config.user_prompt_template.format(context=build_context(chunks), question=question)
        start = time.perf_counter()
        try:
            text = await self._generator.generate(system_prompt=self._config.system_prompt, user_prompt=user_prompt)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            PipelineMetrics.record_failure(SynthesisError.stage)
            raise SynthesisError(f"Error generating answer: {exc}") from exc
        duration = time.perf_counter() - start

        confidence = self.confidence_score(text, chunks)
        found = not self.contains_not_found_indicator(text)
        PipelineMetrics.observe_generation(duration, confidence)
        self._logger.info(
            "synthesis.complete",
            chunk_count=len(chunks),
            confidence=confidence,
            found_in_documents=found,
            duration_seconds=duration,
        )
        return Answer(
            text=text,
            confidence_score=confidence,
            found_in_documents=found,
            citations=build_citations(chunks, self._config.max_excerpt_length),
            alternatives=(),
        )

    def confidence_score(self, answer_text: str, chunks: Sequence[RetrievedResult]) -> float:
        """Product of retrieval, length and hedging factors, rounded to 2 places.

        The retrieval factor is capped at 1.0 but has no floor, so negative
        index scores yield a negative confidence.
        """

        if not chunks:
            return 0.0
        mean_relevance = sum(chunk.relevance_score for chunk in chunks) / len(chunks)
        retrieval_confidence = min(mean_relevance, 1.0)
        word_count = len(answer_text.split())
        length_confidence = self._config.short_answer_penalty if word_count < self._config.short_answer_words else 1.0
        lowered = answer_text.lower()
        hedging = any(phrase in lowered for phrase in self._config.hedging_phrases)
        hedging_confidence = self._config.hedging_penalty if hedging else 1.0
        return round(retrieval_confidence * length_confidence * hedging_confidence, 2)

    def contains_not_found_indicator(self, answer_text: str) -> bool:
        lowered = answer_text.lower()
        return any(phrase in lowered for phrase in self._config.not_found_phrases)
