"""Embedding gateway and embedding clients for DocQA."""

from __future__ import annotations

import asyncio
import hashlib
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence, Tuple

from langchain_community.embeddings import HuggingFaceEmbeddings
from langchain_core.embeddings import Embeddings as LangChainEmbeddings
from langchain_openai import AzureOpenAIEmbeddings, OpenAIEmbeddings

from docqa.config import Settings, resolve_api_version
from docqa.errors import ConfigurationError, EmbeddingError
from docqa.metrics.observability import PipelineMetrics, TimedSection, get_logger

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for the embedding gateway."""

    dim: int = 3072
    batch_size: int = 10
    batch_delay_seconds: float = 0.1

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive (got {self.batch_size})")


class HashEmbeddings(LangChainEmbeddings):
    """Deterministic lightweight embeddings used for tests and offline runs."""

    def __init__(self, dim: int = 3072, normalize: bool = True) -> None:
        self.dim = dim
        self.normalize = normalize

    def _hash_to_vector(self, text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self.dim]
        vector = [byte / 255.0 for byte in raw]
        if self.normalize:
            norm = math.sqrt(sum(value * value for value in vector)) or 1.0
            vector = [value / norm for value in vector]
        return vector

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._hash_to_vector(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._hash_to_vector(text)


class EmbeddingGateway:
    """Turns texts into vectors, batching provider calls under a fixed throttle.

    Items of one sub-batch are requested concurrently; sub-batches run one after
    another with a fixed pause in between. This is a fixed-window throttle, not
    adaptive backoff; honouring provider rate-limit signals with exponential
    backoff would be the better scheme.
    """

    _logger = get_logger("embeddings")

    def __init__(
        self,
        client: LangChainEmbeddings,
        config: EmbeddingConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._config = config or EmbeddingConfig()
        self._sleep = sleep
        self._warned_dim = False

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    async def embed(self, text: str) -> Vector:
        try:
            vector = await self._client.aembed_query(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Error generating embedding: {exc}") from exc
        self._check_dim(vector)
        return tuple(float(value) for value in vector)

    async def embed_batch(self, texts: Sequence[str]) -> List[Vector]:
        vectors: List[Vector] = []
        size = self._config.batch_size
        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            with TimedSection(PipelineMetrics.observe_embedding_batch):
                vectors.extend(await self._embed_concurrently(batch))
            if start + size < len(texts) and self._config.batch_delay_seconds > 0:
                await self._sleep(self._config.batch_delay_seconds)
        self._logger.info("embedding.batch_complete", text_count=len(texts), batch_size=size)
        return vectors

    async def _embed_concurrently(self, batch: Sequence[str]) -> List[Vector]:
        tasks = [asyncio.ensure_future(self.embed(text)) for text in batch]
        try:
            # gather keeps results in submission order
            return list(await asyncio.gather(*tasks))
        except BaseException as exc:
            for task in tasks:
                task.cancel()
            if isinstance(exc, EmbeddingError):
                self._logger.error("embedding.batch_failed", detail=exc.message, batch_size=len(batch))
            raise

    def _check_dim(self, vector: Sequence[float]) -> None:
        if self._warned_dim or len(vector) == self._config.dim:
            return
        self._warned_dim = True
        self._logger.warning("embedding.dim_mismatch", configured=self._config.dim, actual=len(vector))


def build_embedding_client(settings: Settings) -> LangChainEmbeddings:
    """Create the embedding client selected by ``settings.embedding_provider``."""

    provider = settings.embedding_provider
    if provider == "hash":
        return HashEmbeddings(dim=settings.embedding_dim)
    if provider == "huggingface":
        return HuggingFaceEmbeddings(
            model_name=settings.embedding_model,
            encode_kwargs={"normalize_embeddings": True},
        )
    if not settings.openai_api_key:
        raise ConfigurationError(f"embedding provider '{provider}' requires DOCQA_OPENAI_API_KEY")
    if provider == "openai":
        return OpenAIEmbeddings(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            dimensions=settings.embedding_dim,
        )
    if not settings.openai_endpoint:
        raise ConfigurationError("embedding provider 'azure_openai' requires DOCQA_OPENAI_ENDPOINT")
    return AzureOpenAIEmbeddings(
        azure_deployment=settings.embedding_model,
        azure_endpoint=settings.openai_endpoint,
        api_key=settings.openai_api_key,
        api_version=resolve_api_version(settings.openai_api_version),
    )


def build_embedding_gateway(settings: Settings) -> EmbeddingGateway:
    return EmbeddingGateway(
        build_embedding_client(settings),
        EmbeddingConfig(
            dim=settings.embedding_dim,
            batch_size=settings.embedding_batch_size,
            batch_delay_seconds=settings.embedding_batch_delay_ms / 1000.0,
        ),
    )
