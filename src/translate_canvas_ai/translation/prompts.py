"""
Prompt construction for glossary and batch translation.
"""

from __future__ import annotations

import json
from typing import Any

from translate_canvas_ai.canvas.models import LANGUAGE_NAMES
from translate_canvas_ai.extraction.glossary import BatchItem, Glossary, TranslationContext

NO_SUMMARY = "No summary available"


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def _pairs_block(pairs: list[tuple[str, str]], empty: str) -> str:
    if not pairs:
        return empty
    return "\n".join(f"- {original} → {translated}" for original, translated in pairs)


def _characters_block(context: TranslationContext) -> str:
    if not context.characters:
        return "No characters defined"
    lines = []
    for name, profile in context.characters.items():
        line = f"- {name}: {profile.description or 'No description'}"
        if profile.voice_style:
            line += f"\n  Voice: {profile.voice_style}"
        lines.append(line)
    return "\n".join(lines)


def build_system_prompt(source_lang: str, target_lang: str) -> str:
    """System prompt shared by every translation call."""
    return (
        "You are a professional translator for StoryChat interactive fiction. "
        f"You translate from {language_name(source_lang)} to {language_name(target_lang)} "
        "and reply with JSON only: no explanation and no markdown code blocks."
    )


def build_batch_prompt(
    items: list[BatchItem],
    batch_name: str,
    target_lang: str,
    context: TranslationContext,
    glossary: Glossary,
) -> str:
    """
    Build the user prompt for one chunk of a batch.

    Args:
        items: Node projections to translate.
        batch_name: Batch the chunk belongs to.
        target_lang: Target language code.
        context: Story context.
        glossary: Glossary with translations for target_lang.

    Returns:
        Prompt text.
    """
    source_name = language_name(context.source_lang)
    target_name = language_name(target_lang)

    hints = ""
    if context.glossary:
        hints = "\n## Recurring Terms:\n" + ", ".join(context.glossary) + "\n"

    return f"""Translate the following {batch_name} content from {source_name} to {target_name}.

## Translation Guidelines:
1. Maintain the EXACT JSON structure - only translate text values
2. Preserve all keys, UIDs, and technical fields exactly as-is
3. Keep {{{{var_*}}}} variable references unchanged (do NOT translate variable names inside {{{{}}}})
4. Preserve HTML tags in htmlContent - only translate the text content
5. Match the tone, style, and register of the original text
6. For character names: use the glossary translations if provided, otherwise keep the original or romanize
7. For lorebook entries: translate both 'key' and 'text'
8. Leave 'languageInstruction' and 'initialValueIsEnglish' fields unchanged

## Story Context:
{context.story_summary or NO_SUMMARY}

## Characters:
{_characters_block(context)}
{hints}
## Glossary (use these translations for consistency):
### Characters:
{_pairs_block(glossary.translated_pairs("characters", target_lang), "No character translations")}

### Variables:
{_pairs_block(glossary.translated_pairs("variables", target_lang), "No variable translations")}

### Terms:
{_pairs_block(glossary.translated_pairs("terms", target_lang), "No term translations")}

## Input ({batch_name}):
{_dump(items)}

## Output:
Return ONLY the translated JSON array, one object per input object, with the same uid values."""


def build_glossary_prompt(
    untranslated: dict[str, list[dict[str, str]]],
    target_lang: str,
    context: TranslationContext,
) -> str:
    """Build the user prompt for glossary translation."""
    target_name = language_name(target_lang)

    return f"""Translate the following glossary terms from {language_name(context.source_lang)} to {target_name}.

## Story Context:
{context.story_summary or NO_SUMMARY}

## Guidelines:
1. For character names: provide appropriate translations or romanizations
2. For variable names: translate to meaningful {target_name} equivalents
3. For story terms: translate to natural {target_name} expressions
4. Use the 'note' field for context about each term

## Terms to Translate:
{_dump(untranslated)}

## Output Format:
Return a JSON object with the same sections, mapping each original to its translation:
{{
  "characters": {{ "original_name": "translated_name" }},
  "variables": {{ "original_name": "translated_name" }},
  "terms": {{ "original_term": "translated_term" }}
}}

Return ONLY the JSON object."""
