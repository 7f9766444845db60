"""LLM client factory.

``get_llm_client()`` maps the provider settings onto ``create_provider``.
The provider defaults to ``settings.default_provider`` and each provider
has its own model, key and endpoint settings.
"""

from __future__ import annotations

import logging

from config import Settings, get_settings
from llm.providers import LLMProvider, create_provider

logger = logging.getLogger(__name__)


def _connection_settings(provider: str, settings: Settings) -> dict[str, str]:
    if provider == "ollama":
        return {"model": settings.ollama_model, "base_url": settings.ollama_base_url}
    if provider == "openai":
        return {
            "model": settings.openai_model,
            "api_key": settings.openai_api_key,
            "base_url": settings.openai_base_url,
        }
    if provider == "anthropic":
        return {"model": settings.anthropic_model, "api_key": settings.anthropic_api_key}
    raise ValueError(f"Unknown provider: {provider}")


def get_llm_client(
    provider: str | None = None,
    model: str | None = None,
    settings: Settings | None = None,
) -> LLMProvider:
    """Create the provider used for entity identification.

    Raises ``ValueError`` for an unknown provider or a missing API key.
    """
    settings = settings or get_settings()
    provider = (provider or settings.default_provider).strip().lower()

    options = _connection_settings(provider, settings)
    if model:
        options["model"] = model

    logger.debug("Using LLM provider %s (%s)", provider, options["model"])
    return create_provider(provider, timeout=settings.llm_timeout_seconds, **options)
