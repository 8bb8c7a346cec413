"""Runtime configuration for the DocQA services."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOGGER = logging.getLogger(__name__)

# Provider API versions understood by the pinned client libraries.
SUPPORTED_API_VERSIONS: Mapping[str, str] = MappingProxyType(
    {
        "20240601": "2024-06-01",
        "20241021": "2024-10-21",
    }
)
DEFAULT_API_VERSION = "2024-10-21"


def resolve_api_version(requested: str | None) -> str:
    """Map a requested API version onto a supported one, warning on fallback."""

    if not requested:
        return DEFAULT_API_VERSION
    normalized = requested.replace("-", "").lower()
    resolved = SUPPORTED_API_VERSIONS.get(normalized)
    if resolved is not None:
        return resolved
    if normalized.endswith("preview"):
        LOGGER.warning(
            "API version '%s' is a preview version and is not supported; using default version %s instead.",
            requested,
            DEFAULT_API_VERSION,
        )
    else:
        LOGGER.warning(
            "API version '%s' is not recognized (supported: %s); using default version %s instead.",
            requested,
            ", ".join(SUPPORTED_API_VERSIONS.values()),
            DEFAULT_API_VERSION,
        )
    return DEFAULT_API_VERSION


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="docqa_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    data_dir: Path = Path("./data")

    # Chunking
    chunk_size: int = 800
    chunk_overlap: int = 50

    # Retrieval / answer generation
    max_chunks_to_retrieve: int = 20
    top_chunks_for_answer: int = 7
    max_excerpt_length: int = 200
    query_timeout_seconds: float | None = 120.0
    ingestion_timeout_seconds: float | None = 900.0
    reranker: Literal["score", "lexical"] = "score"

    # Providers: "hash" and "template" run fully offline
    embedding_provider: Literal["hash", "huggingface", "openai", "azure_openai"] = "hash"
    embedding_model: str = "text-embedding-3-large"
    embedding_dim: int = 3072
    embedding_batch_size: int = 10
    embedding_batch_delay_ms: int = 100

    generator_provider: Literal["template", "openai", "azure_openai"] = "template"
    generator_model: str = "gpt-4o"
    generator_max_tokens: int = 1500
    generator_temperature: float = 0.3
    generator_timeout_seconds: float = 300.0

    openai_api_key: str | None = None
    openai_endpoint: str | None = None
    openai_api_version: str = DEFAULT_API_VERSION

    # Search index
    chroma_persist_dir: Path = Path("./.chroma")
    chroma_host: str | None = None
    chroma_port: int | None = None
    chroma_ssl: bool = False
    index_name: str = "document-chunks"
    index_document_id_field: str = "document_id"
    index_content_field: str = "content"
    index_lexical_weight: float = 0.35

    # Upload safety
    max_upload_size_mb: int = 100
    allowed_extensions: tuple[str, ...] = (".pdf",)

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_size <= 0 or self.chunk_overlap <= 0:
            raise ValueError("chunk_size and chunk_overlap must be positive integers")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def blob_dir(self) -> Path:
        return self.data_dir / "blobs"

    @property
    def status_dir(self) -> Path:
        return self.data_dir / "status"

    @property
    def resolved_api_version(self) -> str:
        return resolve_api_version(self.openai_api_version)


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
