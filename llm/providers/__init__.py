"""
LLM Provider implementations.
"""

import logging
from typing import Dict

from .base import LLMError, LLMProvider, ProviderNotConfiguredError, strip_code_fences
from .anthropic_provider import AnthropicProvider
from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider

logger = logging.getLogger(__name__)

# Order used when LLM_PROVIDER=auto
PROVIDER_PRIORITY = ("anthropic", "openai", "gemini")


def available_providers(settings) -> Dict[str, bool]:
    """Report which providers have an API key configured."""
    return {
        "anthropic": bool(settings.anthropic_api_key),
        "openai": bool(settings.openai_api_key),
        "gemini": bool(settings.gemini_api_key),
    }


def _build(name: str, settings) -> LLMProvider:
    common = {
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "timeout": settings.llm_timeout_seconds,
        "max_retries": settings.llm_max_retries,
    }
    if name == "anthropic":
        return AnthropicProvider(
            api_key=settings.anthropic_api_key, model_id=settings.anthropic_model, **common
        )
    if name == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key, model_id=settings.openai_llm_model, **common
        )
    if name == "gemini":
        return GeminiProvider(
            api_key=settings.gemini_api_key, model_id=settings.gemini_model, **common
        )
    raise ValueError(f"Unknown LLM provider: {name}")


def create_provider(settings) -> LLMProvider:
    """
    Create the configured LLM provider.

    Args:
        settings: Application settings

    Returns:
        Provider instance

    Raises:
        ProviderNotConfiguredError: If the selected provider has no API key
    """
    configured = available_providers(settings)
    choice = (settings.llm_provider or "auto").lower()

    if choice == "auto":
        for name in PROVIDER_PRIORITY:
            if configured[name]:
                logger.info(f"Auto-selected LLM provider: {name}")
                return _build(name, settings)
        raise ProviderNotConfiguredError("No LLM API key configured")

    if choice not in configured:
        raise ValueError(f"Unknown LLM provider: {choice}")
    if not configured[choice]:
        raise ProviderNotConfiguredError("API key not configured", provider=choice)
    return _build(choice, settings)


__all__ = [
    "LLMError",
    "LLMProvider",
    "ProviderNotConfiguredError",
    "strip_code_fences",
    "AnthropicProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "PROVIDER_PRIORITY",
    "available_providers",
    "create_provider",
]
