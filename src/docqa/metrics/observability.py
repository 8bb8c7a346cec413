"""Observability helpers for DocQA."""

from __future__ import annotations

import logging
import time
from typing import Callable

import structlog
from prometheus_client import Counter, Histogram

_logger_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str = "docqa") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    chunking_latency = Histogram(
        "docqa_chunking_duration_seconds",
        "Time spent chunking extracted pages.",
        buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0),
    )
    chunk_count = Histogram(
        "docqa_ingestion_chunk_count",
        "Chunks produced per ingested document.",
        buckets=(0, 1, 5, 10, 50, 100, 500, 1000),
    )
    embedding_batch_latency = Histogram(
        "docqa_embedding_batch_duration_seconds",
        "Time spent embedding one sub-batch of texts.",
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    retrieval_latency = Histogram(
        "docqa_retrieval_duration_seconds",
        "Time spent on hybrid search.",
        buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    )
    retrieved_result_count = Histogram(
        "docqa_retrieved_result_count",
        "Number of results returned by hybrid search.",
        buckets=(0, 1, 3, 5, 7, 10, 20, 50),
    )
    generation_latency = Histogram(
        "docqa_generation_duration_seconds",
        "Time spent generating answers.",
        buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
    )
    confidence_score = Histogram(
        "docqa_answer_confidence",
        "Heuristic confidence assigned to generated answers.",
        buckets=(0.0, 0.25, 0.5, 0.75, 1.0),
    )
    stage_failures = Counter(
        "docqa_stage_failures_total",
        "Pipeline failures by stage.",
        ["stage"],
    )

    @classmethod
    def observe_chunking(cls, duration_seconds: float, chunk_count: int) -> None:
        cls.chunking_latency.observe(duration_seconds)
        cls.chunk_count.observe(chunk_count)

    @classmethod
    def observe_embedding_batch(cls, duration_seconds: float) -> None:
        cls.embedding_batch_latency.observe(duration_seconds)

    @classmethod
    def observe_retrieval(cls, duration_seconds: float, result_count: int) -> None:
        cls.retrieval_latency.observe(duration_seconds)
        cls.retrieved_result_count.observe(result_count)

    @classmethod
    def observe_generation(cls, duration_seconds: float, confidence: float) -> None:
        cls.generation_latency.observe(duration_seconds)
        cls.confidence_score.observe(confidence)

    @classmethod
    def record_failure(cls, stage: str) -> None:
        cls.stage_failures.labels(stage=stage).inc()


class TimedSection:
    """Context manager capturing elapsed time for metrics."""

    def __init__(self, callback: Callable[[float], None]) -> None:
        self._callback = callback
        self._start = 0.0
        self.elapsed = 0.0

    def __enter__(self) -> "TimedSection":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self.elapsed = time.perf_counter() - self._start
        if exc_type is None:
            self._callback(self.elapsed)


__all__ = [
    "PipelineMetrics",
    "TimedSection",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_logger",
]
