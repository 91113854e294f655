"""
Batch translation.

Batches are translated in priority order, each split into fixed-size chunks
sent one at a time. Replies are checked against the chunk they answer;
suspicious differences are logged as warnings and left for the validator.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Mapping
from typing import Any

from translate_canvas_ai.errors import TranslationError
from translate_canvas_ai.extraction.glossary import (
    ANNOTATION_KEYS,
    BATCH_ORDER,
    BatchItem,
    BatchName,
    Glossary,
    TranslationContext,
)
from translate_canvas_ai.llm.base import LLMProvider, LogCallback
from translate_canvas_ai.translation.parsing import parse_json_reply
from translate_canvas_ai.translation.prompts import build_batch_prompt, build_system_prompt

VAR_PLACEHOLDER = re.compile(r"\{\{var_[^}]+\}\}")
_HTML_TAG = re.compile(r"</?\s*([a-zA-Z][a-zA-Z0-9-]*)")

# (batch name, items done, items total)
ChunkProgress = Callable[[str, int, int], None]


def _placeholders(value: Any) -> list[str]:
    """All {{var_*}} tokens in the string values of a projection."""
    if isinstance(value, str):
        return VAR_PLACEHOLDER.findall(value)
    if isinstance(value, dict):
        return [token for v in value.values() for token in _placeholders(v)]
    if isinstance(value, list):
        return [token for v in value for token in _placeholders(v)]
    return []


def _html_tags(value: Any) -> list[str]:
    if not isinstance(value, str):
        return []
    return [tag.lower() for tag in _HTML_TAG.findall(value)]


def _fields(item: BatchItem) -> set[str]:
    """Keys of a projection, without the merge annotations."""
    return set(item) - set(ANNOTATION_KEYS)


def chunked(items: list[BatchItem], size: int) -> list[list[BatchItem]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchTranslator:
    """
    Translates extracted batches chunk by chunk.

    Chunks run strictly one after another with ``chunk_delay`` seconds between
    them to stay under provider rate limits.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        chunk_size: int = 10,
        chunk_delay: float = 0.5,
        tolerate_chunk_failures: bool = False,
        temperature: float = 0.3,
        max_tokens: int = 16000,
        log_callback: LogCallback | None = None,
    ):
        """
        Initialize batch translator.

        Args:
            provider: Translation backend.
            chunk_size: Items per call.
            chunk_delay: Pause between calls, in seconds.
            tolerate_chunk_failures: Keep going when a chunk fails; its items
                are left untranslated.
            temperature: Sampling temperature.
            max_tokens: Output token ceiling per call.
            log_callback: Receives (level, message, context) warnings.
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        self.provider = provider
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.tolerate_chunk_failures = tolerate_chunk_failures
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._log_callback = log_callback

        self.failed_chunks = 0

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        if self._log_callback:
            self._log_callback(level, message, context or {})

    async def translate_batch(
        self,
        items: list[BatchItem],
        batch_name: BatchName | str,
        target_lang: str,
        context: TranslationContext,
        glossary: Glossary,
    ) -> list[BatchItem]:
        """
        Translate one chunk of a batch.

        Args:
            items: Projections to translate.
            batch_name: Batch the chunk belongs to.
            target_lang: Target language code.
            context: Story context.
            glossary: Translated glossary (read only).

        Returns:
            Translated projections whose uid belongs to the chunk.

        Raises:
            TranslationError: On a transport failure or a reply that is not a
                JSON array.
        """
        if not items:
            return []

        name = BatchName(batch_name).value
        prompt = build_batch_prompt(items, name, target_lang, context, glossary)

        try:
            response = await self.provider.chat(
                system_prompt=build_system_prompt(context.source_lang, target_lang),
                user_prompt=prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise TranslationError(
                f"Translation of {name} chunk failed: {e}",
                details={"batch": name, "uids": [item["uid"] for item in items]},
            ) from e

        translated = parse_json_reply(response.content, list)
        return self._check_reply(name, items, translated)

    def _check_reply(
        self,
        batch_name: str,
        items: list[BatchItem],
        translated: list[Any],
    ) -> list[BatchItem]:
        if len(translated) != len(items):
            self._log(
                "WARNING",
                f"{batch_name}: reply has {len(translated)} items, chunk had {len(items)}",
                {"batch": batch_name},
            )

        sources = {item["uid"]: item for item in items}
        accepted: list[BatchItem] = []

        for entry in translated:
            uid = entry.get("uid") if isinstance(entry, dict) else None
            source = sources.get(uid) if isinstance(uid, str) else None
            if source is None:
                self._log(
                    "WARNING",
                    f"{batch_name}: dropped reply item with unknown uid {uid!r}",
                    {"batch": batch_name},
                )
                continue

            if sorted(_placeholders(source)) != sorted(_placeholders(entry)):
                self._log(
                    "WARNING",
                    f"{batch_name}: variable placeholders changed in {uid}",
                    {
                        "batch": batch_name,
                        "uid": uid,
                        "source": _placeholders(source),
                        "translated": _placeholders(entry),
                    },
                )

            if "htmlContent" in source and _html_tags(source["htmlContent"]) != _html_tags(
                entry.get("htmlContent")
            ):
                self._log(
                    "WARNING",
                    f"{batch_name}: HTML tag structure changed in {uid}",
                    {"batch": batch_name, "uid": uid},
                )

            source_fields = _fields(source)
            reply_fields = _fields(entry)
            if source_fields != reply_fields:
                self._log(
                    "WARNING",
                    f"{batch_name}: fields changed in {uid}",
                    {
                        "batch": batch_name,
                        "uid": uid,
                        "missing": sorted(source_fields - reply_fields),
                        "added": sorted(reply_fields - source_fields),
                    },
                )

            accepted.append(entry)

        return accepted

    async def translate_batches(
        self,
        batches: Mapping[BatchName, list[BatchItem]],
        target_lang: str,
        context: TranslationContext,
        glossary: Glossary,
        progress_callback: ChunkProgress | None = None,
    ) -> dict[BatchName, list[BatchItem]]:
        """
        Translate all batches in priority order.

        Returns:
            Translated projections keyed by batch name; every batch name is
            present, empty batches map to an empty list.
        """
        results: dict[BatchName, list[BatchItem]] = {}

        for batch_name in BATCH_ORDER:
            items = batches.get(batch_name) or []
            results[batch_name] = []
            if not items:
                continue

            chunks = chunked(items, self.chunk_size)
            done = 0
            if progress_callback:
                progress_callback(batch_name.value, 0, len(items))

            for index, chunk in enumerate(chunks):
                try:
                    translated = await self.translate_batch(
                        chunk, batch_name, target_lang, context, glossary
                    )
                except TranslationError as e:
                    if not self.tolerate_chunk_failures:
                        raise
                    self.failed_chunks += 1
                    translated = []
                    self._log(
                        "WARNING",
                        f"{batch_name.value}: chunk {index + 1}/{len(chunks)} failed, "
                        f"keeping {len(chunk)} originals",
                        {"batch": batch_name.value, **e.to_dict()},
                    )

                results[batch_name].extend(translated)
                done += len(chunk)
                if progress_callback:
                    progress_callback(batch_name.value, done, len(items))

                if index < len(chunks) - 1 and self.chunk_delay > 0:
                    await asyncio.sleep(self.chunk_delay)

        return results
