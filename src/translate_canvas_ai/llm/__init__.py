"""
Translation capability abstraction.

Backends:
- OpenRouter: OpenAI-compatible API with retries
- Fallback: wraps a primary and a fallback backend
"""

from translate_canvas_ai.llm.base import LLMProvider, LLMResponse, LogCallback
from translate_canvas_ai.llm.factory import (
    LLMProviderType,
    create_llm_provider,
    create_translation_provider,
)
from translate_canvas_ai.llm.fallback import FallbackLLMProvider

__all__ = [
    "FallbackLLMProvider",
    "LLMProvider",
    "LLMProviderType",
    "LLMResponse",
    "LogCallback",
    "create_llm_provider",
    "create_translation_provider",
]
