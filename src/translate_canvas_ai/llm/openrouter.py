"""
OpenRouter translation backend.

Talks to OpenRouter's OpenAI-compatible endpoint through the openai SDK.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from openai import AsyncOpenAI

from translate_canvas_ai.llm.base import LLMProvider, LLMResponse

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(LLMProvider):
    """
    OpenRouter backend with exponential-backoff retries.

    Failed attempts are retried after 1s, 2s, 4s ... up to ``max_retries``
    attempts in total; the last error is re-raised.
    """

    # Short names accepted in config
    MODELS = {
        "default": "anthropic/claude-sonnet-4",
        "fast": "anthropic/claude-3.5-haiku",
        "gemini": "google/gemini-2.5-pro",
        "deepseek": "deepseek/deepseek-chat",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "default",
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 180.0,
        max_retries: int = 3,
        app_name: str | None = None,
    ):
        """
        Initialize OpenRouter backend.

        Args:
            api_key: OpenRouter API key.
            model: Alias from MODELS or a full OpenRouter model id.
            base_url: API base URL.
            timeout: Per-request timeout in seconds.
            max_retries: Total attempts per completion.
            app_name: Optional X-Title header shown in OpenRouter usage stats.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self._model_name = self.MODELS.get(model, model)
        self._max_retries = max_retries
        headers = {"X-Title": app_name} if app_name else None

        # Retries are handled here so the backoff schedule is ours
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=headers,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def model(self) -> str:
        return self._model_name

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        start_time = time.perf_counter()
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                response = await self._client.chat.completions.create(
                    model=self._model_name,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs,
                )
            except Exception as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(2**attempt)
                continue

            choice = response.choices[0]
            usage = response.usage
            return LLMResponse(
                content=(choice.message.content or "").strip(),
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                model=self._model_name,
                latency_ms=(time.perf_counter() - start_time) * 1000,
                metadata={
                    "provider": self.name,
                    "finish_reason": choice.finish_reason,
                    "attempt": attempt + 1,
                },
            )

        raise last_error or Exception("OpenRouter request failed after retries")
