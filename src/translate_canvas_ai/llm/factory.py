"""
Translation backend factory.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from translate_canvas_ai.llm.base import LLMProvider, LogCallback

if TYPE_CHECKING:
    from translate_canvas_ai.config import TranslationConfig


class LLMProviderType(str, Enum):
    """Available backends."""

    OPENROUTER = "openrouter"


def create_llm_provider(
    provider_type: LLMProviderType | str,
    *,
    api_key: str | None = None,
    model: str = "default",
    **kwargs: Any,
) -> LLMProvider:
    """
    Create a single translation backend.

    Args:
        provider_type: Backend name.
        api_key: Backend API key.
        model: Model alias or full id.
        **kwargs: Backend-specific options (timeout, max_retries, ...).

    Raises:
        ValueError: On an unknown backend or a missing API key.
    """
    if isinstance(provider_type, str):
        normalized = provider_type.lower().replace("_", "-")
        try:
            provider_type = LLMProviderType(normalized)
        except ValueError:
            valid = [p.value for p in LLMProviderType]
            raise ValueError(
                f"Invalid provider type: {normalized}. Valid options: {valid}"
            ) from None

    if provider_type == LLMProviderType.OPENROUTER:
        if not api_key:
            raise ValueError("OpenRouter provider requires an API key (OPENROUTER_API_KEY)")

        from translate_canvas_ai.llm.openrouter import OpenRouterProvider

        return OpenRouterProvider(api_key=api_key, model=model, **kwargs)

    raise ValueError(f"Unknown provider type: {provider_type}")


def create_translation_provider(
    config: TranslationConfig,
    log_callback: LogCallback | None = None,
) -> LLMProvider:
    """
    Build the backend described by the translation config section.

    A FallbackLLMProvider is returned when ``fallback_model`` is set; both
    models share the provider and API key.
    """
    options = {
        "api_key": config.openrouter_api_key,
        "timeout": config.timeout_seconds,
        "max_retries": config.max_retries,
    }
    primary = create_llm_provider(config.provider, model=config.default_model, **options)
    if not config.fallback_model:
        return primary

    from translate_canvas_ai.llm.fallback import FallbackLLMProvider

    fallback = create_llm_provider(config.provider, model=config.fallback_model, **options)
    return FallbackLLMProvider(primary=primary, fallback=fallback, log_callback=log_callback)
