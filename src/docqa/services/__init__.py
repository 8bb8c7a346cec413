"""Service layer orchestrations for DocQA."""

from .citations import append_inline_citations, build_citations, format_citations_for_display
from .deletion import DocumentDeletionService
from .generation import ChatModelGenerator, GenerationBackend, GenerationConfig, TemplateGenerator, build_generator
from .query import QueryConfig, QueryService
from .synthesis import AnswerSynthesizer, SynthesisConfig

__all__ = [
    "AnswerSynthesizer",
    "ChatModelGenerator",
    "DocumentDeletionService",
    "GenerationBackend",
    "GenerationConfig",
    "QueryConfig",
    "QueryService",
    "SynthesisConfig",
    "TemplateGenerator",
    "append_inline_citations",
    "build_citations",
    "build_generator",
    "format_citations_for_display",
]
