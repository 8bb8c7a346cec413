"""Generation backends for DocQA."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from docqa.config import Settings, resolve_api_version
from docqa.errors import ConfigurationError
from docqa.metrics.observability import get_logger

LOGGER = get_logger("generation")


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling bounds for answer generation."""

    max_tokens: int = 1500
    temperature: float = 0.3
    timeout_seconds: float = 300.0


class GenerationBackend(Protocol):
    """Protocol describing chat-completion behaviour."""

    async def generate(self, *, system_prompt: str, user_prompt: str) -> str:
        """Return the model's reply to a system instruction plus user message."""


class TemplateGenerator:
    """Deterministic generator used for tests and offline environments."""

    async def generate(self, *, system_prompt: str, user_prompt: str) -> str:
        context, _, question = user_prompt.partition("\n\nQuestion: ")
        context = context.replace("Context from documents:\n", "", 1)
        question = question.split("\n", 1)[0].strip()
        blocks = [block for block in context.split("\n\n---\n\n") if block.strip()]
        if not blocks:
            return "I don't have enough information in the provided documents to answer that question."
        header, _, body = blocks[0].partition("\n")
        reference = header.strip("[] ")
        return (
            f"Based on the provided documents, the passage most relevant to the question '{question}' "
            f"is found in {reference}: {body.strip()}"
        )


class ChatModelGenerator:
    """Generator backed by a LangChain chat model."""

    def __init__(self, model: BaseChatModel) -> None:
        self._model = model

    async def generate(self, *, system_prompt: str, user_prompt: str) -> str:
        message = await self._model.ainvoke(
            [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        )
        content = message.content
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
        return str(content).strip()


def build_generator(settings: Settings, config: GenerationConfig | None = None) -> GenerationBackend:
    """Create the generator selected by ``settings.generator_provider``."""

    config = config or GenerationConfig(
        max_tokens=settings.generator_max_tokens,
        temperature=settings.generator_temperature,
        timeout_seconds=settings.generator_timeout_seconds,
    )
    provider = settings.generator_provider
    if provider == "template":
        LOGGER.info("generation.template_mode")
        return TemplateGenerator()
    if not settings.openai_api_key:
        raise ConfigurationError(f"generator provider '{provider}' requires DOCQA_OPENAI_API_KEY")
    if provider == "openai":
        model: BaseChatModel = ChatOpenAI(
            model=settings.generator_model,
            api_key=settings.openai_api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout_seconds,
        )
    else:
        if not settings.openai_endpoint:
            raise ConfigurationError("generator provider 'azure_openai' requires DOCQA_OPENAI_ENDPOINT")
        model = AzureChatOpenAI(
            azure_deployment=settings.generator_model,
            azure_endpoint=settings.openai_endpoint,
            api_key=settings.openai_api_key,
            api_version=resolve_api_version(settings.openai_api_version),
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout_seconds,
        )
    LOGGER.info("generation.model_configured", provider=provider, model=settings.generator_model)
    return ChatModelGenerator(model)
