"""
Glossary translation.

Names and terms are translated once, before any content batch, so every
later call can be told how to render them.
"""

from __future__ import annotations

from translate_canvas_ai.errors import TranslationError
from translate_canvas_ai.extraction.glossary import Glossary, TranslationContext
from translate_canvas_ai.llm.base import LLMProvider, LogCallback
from translate_canvas_ai.translation.parsing import parse_json_reply
from translate_canvas_ai.translation.prompts import build_glossary_prompt, build_system_prompt


class GlossaryTranslator:
    """Fills a glossary's target-language translations in one call."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        log_callback: LogCallback | None = None,
    ):
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._log_callback = log_callback

    def _log(self, level: str, message: str, context: dict | None = None) -> None:
        if self._log_callback:
            self._log_callback(level, message, context or {})

    async def translate_glossary(
        self,
        glossary: Glossary,
        target_lang: str,
        context: TranslationContext,
    ) -> Glossary:
        """
        Translate every glossary entry lacking a target_lang translation.

        The glossary is updated in place and returned.

        Args:
            glossary: Glossary skeleton from extraction.
            target_lang: Target language code.
            context: Story context for the prompt.

        Returns:
            The same glossary object.

        Raises:
            TranslationError: On a transport failure or a reply that is not a
                JSON object.
        """
        untranslated = glossary.untranslated(target_lang)
        pending = sum(len(entries) for entries in untranslated.values())
        if pending == 0:
            self._log("DEBUG", "Glossary already translated, skipping call", {"target": target_lang})
            return glossary

        prompt = build_glossary_prompt(untranslated, target_lang, context)
        try:
            response = await self.provider.chat(
                system_prompt=build_system_prompt(glossary.source_lang, target_lang),
                user_prompt=prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise TranslationError(
                f"Glossary translation failed: {e}",
                details={"error_type": type(e).__name__, "entries": pending},
            ) from e

        translations = parse_json_reply(response.content, dict)
        updated = glossary.apply_translations(target_lang, translations)

        self._log(
            "INFO",
            f"Glossary translated: {updated}/{pending} entries",
            {
                "target": target_lang,
                "model": response.model,
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            },
        )
        return glossary
