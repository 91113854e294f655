"""Tests for translation backends: OpenRouter retries, fallback and factory."""

from types import SimpleNamespace

import pytest

from translate_canvas_ai.config import TranslationConfig
from translate_canvas_ai.llm import openrouter
from translate_canvas_ai.llm.base import LLMProvider, LLMResponse
from translate_canvas_ai.llm.factory import create_llm_provider, create_translation_provider
from translate_canvas_ai.llm.fallback import FallbackLLMProvider
from translate_canvas_ai.llm.openrouter import OpenRouterProvider


class StubProvider(LLMProvider):
    def __init__(self, model, reply="ok", error=None):
        self._model = model
        self.reply = reply
        self.error = error
        self.messages = []

    @property
    def name(self):
        return "stub"

    @property
    def model(self):
        return self._model

    async def complete(self, messages, *, temperature=0.3, max_tokens=4096, **kwargs):
        self.messages.append(messages)
        if self.error:
            raise self.error
        return LLMResponse(content=self.reply, model=self._model)


def _completion(content, prompt_tokens=12, completion_tokens=7):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")
        ],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(openrouter, "asyncio", SimpleNamespace(sleep=sleep))
    return delays


def _openrouter(outcomes, **kwargs):
    provider = OpenRouterProvider(api_key="sk-or-test", **kwargs)
    completions = FakeCompletions(outcomes)
    provider._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return provider, completions


class TestOpenRouter:
    def test_model_aliases(self):
        assert OpenRouterProvider(api_key="k").model == "anthropic/claude-sonnet-4"
        assert OpenRouterProvider(api_key="k", model="fast").model == "anthropic/claude-3.5-haiku"
        assert OpenRouterProvider(api_key="k", model="openai/gpt-4o").model == "openai/gpt-4o"

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            OpenRouterProvider(api_key="k", max_retries=0)

    async def test_chat(self, sleeps):
        provider, completions = _openrouter([_completion("  [1]  ")])

        response = await provider.chat("system", "user", temperature=0.1, max_tokens=500)

        assert response.content == "[1]"
        assert response.total_tokens == 19
        assert response.metadata["attempt"] == 1
        call = completions.calls[0]
        assert call["model"] == "anthropic/claude-sonnet-4"
        assert call["max_tokens"] == 500
        assert call["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]
        assert sleeps == []

    async def test_retries_with_backoff(self, sleeps):
        provider, completions = _openrouter(
            [TimeoutError("slow"), ConnectionError("reset"), _completion("done")]
        )

        response = await provider.chat("s", "u")

        assert response.content == "done"
        assert response.metadata["attempt"] == 3
        assert sleeps == [1, 2]

    async def test_gives_up_after_max_retries(self, sleeps):
        provider, completions = _openrouter(
            [TimeoutError("one"), TimeoutError("two")], max_retries=2
        )

        with pytest.raises(TimeoutError, match="two"):
            await provider.chat("s", "u")
        assert len(completions.calls) == 2
        assert sleeps == [1]

    async def test_empty_content(self, sleeps):
        provider, _ = _openrouter([_completion(None)])
        assert (await provider.chat("s", "u")).content == ""


class TestFallback:
    async def test_primary_success(self, log_callback, log_records):
        primary = StubProvider("primary/model", reply="from primary")
        fallback = StubProvider("fallback/model")
        provider = FallbackLLMProvider(primary, fallback, log_callback)

        response = await provider.chat("s", "u")

        assert response.content == "from primary"
        assert response.metadata["provider_used"] == "primary"
        assert fallback.messages == []
        assert log_records == []
        assert provider.model == "primary/model"

    async def test_falls_back_on_error(self, log_callback, log_records):
        primary = StubProvider("primary/model", error=RuntimeError("rate limited"))
        fallback = StubProvider("fallback/model", reply="from fallback")
        provider = FallbackLLMProvider(primary, fallback, log_callback)

        response = await provider.chat("s", "u")

        assert response.content == "from fallback"
        assert response.metadata["provider_used"] == "fallback"
        assert response.metadata["primary_error"] == "rate limited"
        assert fallback.messages == primary.messages
        assert [level for level, _, _ in log_records] == ["WARNING", "INFO"]
        assert log_records[0][2]["error_type"] == "RuntimeError"

        stats = provider.get_stats()
        assert stats["fallback_requests"] == 1
        assert stats["primary_failures"] == 1
        assert stats["fallback_rate"] == 1.0

    async def test_both_fail(self, log_callback, log_records):
        primary_error = RuntimeError("primary down")
        primary = StubProvider("primary/model", error=primary_error)
        fallback = StubProvider("fallback/model", error=ValueError("fallback down"))
        provider = FallbackLLMProvider(primary, fallback, log_callback)

        with pytest.raises(ValueError, match="fallback down") as exc_info:
            await provider.chat("s", "u")

        assert exc_info.value.__cause__ is primary_error
        assert log_records[-1][0] == "ERROR"

    def test_stats_without_requests(self):
        provider = FallbackLLMProvider(StubProvider("a"), StubProvider("b"))
        assert provider.get_stats()["fallback_rate"] == 0.0
        assert provider.name == "stub+stub"


class TestFactory:
    def test_openrouter(self):
        provider = create_llm_provider("OpenRouter", api_key="k", model="deepseek")
        assert isinstance(provider, OpenRouterProvider)
        assert provider.model == "deepseek/deepseek-chat"

    def test_missing_key(self):
        with pytest.raises(ValueError, match="API key"):
            create_llm_provider("openrouter", api_key="")

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Invalid provider type"):
            create_llm_provider("carrier-pigeon", api_key="k")

    def test_translation_provider_without_fallback(self):
        config = TranslationConfig(openrouter_api_key="k")
        assert isinstance(create_translation_provider(config), OpenRouterProvider)

    def test_translation_provider_with_fallback(self):
        config = TranslationConfig(
            openrouter_api_key="k",
            default_model="anthropic/claude-sonnet-4",
            fallback_model="openai/gpt-4o-mini",
        )
        provider = create_translation_provider(config)

        assert isinstance(provider, FallbackLLMProvider)
        assert provider.primary_provider.model == "anthropic/claude-sonnet-4"
        assert provider.fallback_provider.model == "openai/gpt-4o-mini"
