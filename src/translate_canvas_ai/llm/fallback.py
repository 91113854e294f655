"""
Fallback wrapper around two translation backends.
"""

from __future__ import annotations

import time
from typing import Any

from translate_canvas_ai.llm.base import LLMProvider, LLMResponse, LogCallback


class FallbackLLMProvider(LLMProvider):
    """
    Sends each request to the primary backend and, when it raises, repeats
    the same request on the fallback backend.

    Switches are reported through ``log_callback(level, message, context)``.
    """

    def __init__(
        self,
        primary: LLMProvider,
        fallback: LLMProvider,
        log_callback: LogCallback | None = None,
    ):
        self._primary = primary
        self._fallback = fallback
        self._log_callback = log_callback

        self._primary_requests = 0
        self._fallback_requests = 0
        self._primary_failures = 0

    @property
    def name(self) -> str:
        return f"{self._primary.name}+{self._fallback.name}"

    @property
    def model(self) -> str:
        return self._primary.model

    @property
    def primary_provider(self) -> LLMProvider:
        return self._primary

    @property
    def fallback_provider(self) -> LLMProvider:
        return self._fallback

    def get_stats(self) -> dict[str, Any]:
        """Request counters for the status output."""
        total = self._primary_requests + self._fallback_requests
        return {
            "total_requests": total,
            "primary_requests": self._primary_requests,
            "fallback_requests": self._fallback_requests,
            "primary_failures": self._primary_failures,
            "fallback_rate": self._fallback_requests / total if total else 0.0,
        }

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        if self._log_callback:
            self._log_callback(level, message, context or {})

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Complete with the primary backend, falling back on any error.

        Raises:
            Exception: The fallback's error when both backends fail, chained
                to the primary's error.
        """
        start_time = time.perf_counter()

        try:
            response = await self._primary.complete(
                messages, temperature=temperature, max_tokens=max_tokens, **kwargs
            )
        except Exception as e:
            primary_error = e
            self._primary_failures += 1
            self._log(
                "WARNING",
                f"Primary model {self._primary.model} failed, retrying on {self._fallback.model}",
                {
                    "primary_model": self._primary.model,
                    "fallback_model": self._fallback.model,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
        else:
            self._primary_requests += 1
            response.metadata["provider_used"] = "primary"
            return response

        try:
            response = await self._fallback.complete(
                messages, temperature=temperature, max_tokens=max_tokens, **kwargs
            )
        except Exception as fallback_error:
            self._log(
                "ERROR",
                "Primary and fallback models both failed",
                {
                    "primary_error": str(primary_error),
                    "fallback_error": str(fallback_error),
                },
            )
            raise fallback_error from primary_error

        self._fallback_requests += 1
        response.metadata["provider_used"] = "fallback"
        response.metadata["primary_error"] = str(primary_error)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        self._log(
            "INFO",
            f"Fallback model {self._fallback.model} succeeded after {elapsed_ms:.0f}ms",
            {"fallback_model": self._fallback.model, "latency_ms": elapsed_ms},
        )
        return response
