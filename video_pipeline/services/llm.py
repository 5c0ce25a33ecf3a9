"""
Chat models for story-variable suggestions.

Only ``services/story_variables.py`` talks to an LLM; everything else in the
pipeline is deterministic. Models are built once per provider and reused.
"""
from langchain_openai import ChatOpenAI
from langchain_anthropic import ChatAnthropic
from langchain_ollama import ChatOllama
from langchain_core.language_models import BaseChatModel
from video_pipeline.config import settings
from typing import Literal, Optional
import logging

logger = logging.getLogger(__name__)

LLMProvider = Literal["openai", "anthropic", "ollama"]

_llm_cache: dict[str, BaseChatModel] = {}


def _openai() -> BaseChatModel:
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is required for story variable suggestions with OpenAI")
    return ChatOpenAI(
        model=settings.openai_chat_model,
        temperature=settings.story_variables_temperature,
        api_key=settings.openai_api_key,
        timeout=settings.provider_timeout_seconds,
        max_retries=1,
    )


def _anthropic() -> BaseChatModel:
    if not settings.anthropic_api_key:
        raise ValueError("ANTHROPIC_API_KEY is required for story variable suggestions with Anthropic")
    return ChatAnthropic(
        model=settings.anthropic_chat_model,
        temperature=settings.story_variables_temperature,
        api_key=settings.anthropic_api_key,
        timeout=settings.provider_timeout_seconds,
        max_retries=1,
    )


def _ollama() -> BaseChatModel:
    return ChatOllama(
        model=settings.ollama_model,
        base_url=settings.ollama_base_url,
        temperature=settings.story_variables_temperature,
    )


_FACTORIES = {
    "openai": _openai,
    "anthropic": _anthropic,
    "ollama": _ollama,
}


def get_llm(provider: Optional[LLMProvider] = None) -> BaseChatModel:
    """
    Chat model for ``provider`` (default: ``settings.llm_provider``).

    Raises:
        ValueError: unknown provider, or its API key is not configured
    """
    key = provider or settings.llm_provider
    if key not in _FACTORIES:
        raise ValueError(f"Unsupported LLM provider: {key}")

    if key not in _llm_cache:
        _llm_cache[key] = _FACTORIES[key]()
        logger.debug(f"Created {type(_llm_cache[key]).__name__} for story variables")
    return _llm_cache[key]
