"""
Base classes for the translation capability.

Every backend that can translate canvas content implements LLMProvider. The
pipeline only ever calls ``chat`` with one system and one user prompt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# (level, message, context) -> None; wired to Database.log by the orchestrator
LogCallback = Callable[[str, str, dict[str, Any]], None]


@dataclass
class LLMResponse:
    """Reply from a translation backend."""

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    latency_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMProvider(ABC):
    """Abstract translation backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in log entries."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Resolved model identifier."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Run one completion.

        Args:
            messages: Chat messages with 'role' and 'content' keys.
            temperature: Sampling temperature.
            max_tokens: Output token ceiling.
            **kwargs: Backend-specific options.

        Returns:
            LLMResponse with the reply text and usage.
        """
        ...

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        """Single system + user exchange."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return await self.complete(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
