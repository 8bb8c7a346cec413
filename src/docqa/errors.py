"""Error taxonomy shared by the DocQA pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass


class DocQAError(RuntimeError):
    """Base class for all DocQA errors."""


class ConfigurationError(DocQAError):
    """Raised when settings or call parameters are malformed."""


class NotFoundError(DocQAError):
    """Raised when a referenced document does not exist."""


class ProviderError(DocQAError):
    """Failure of an external collaborator, tagged with the pipeline stage."""

    stage = "unknown"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage
        self.message = message

    def __str__(self) -> str:
        return f"{self.stage}: {self.message}"


class ExtractionError(ProviderError):
    stage = "text_extraction"


class EmbeddingError(ProviderError):
    stage = "embedding_generation"


class IndexingError(ProviderError):
    stage = "indexing"


class RetrievalError(ProviderError):
    stage = "retrieval"


class SynthesisError(ProviderError):
    stage = "answer_generation"


class DeadlineExceededError(ProviderError):
    """Raised when the end-to-end deadline of a call expires."""


@dataclass(frozen=True)
class StageFailure:
    """Structured failure detail handed to the orchestration layer."""

    stage: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException, *, default_stage: str = "unknown") -> "StageFailure":
        if isinstance(exc, ProviderError):
            return cls(stage=exc.stage, message=exc.message)
        return cls(stage=default_stage, message=str(exc) or exc.__class__.__name__)


__all__ = [
    "ConfigurationError",
    "DeadlineExceededError",
    "DocQAError",
    "EmbeddingError",
    "ExtractionError",
    "IndexingError",
    "NotFoundError",
    "ProviderError",
    "RetrievalError",
    "StageFailure",
    "SynthesisError",
]
