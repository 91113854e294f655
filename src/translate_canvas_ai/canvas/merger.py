"""
Merge translated batches back into a canvas.

The merge works on a deep clone of the original document and only overwrites
fields the original node already has, so non-text data (ids, connections,
trigger logic, numeric settings) is carried through untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.extraction.glossary import BATCH_ORDER, BatchItem, BatchName, ExtractionResult
from translate_canvas_ai.extraction.language import (
    CANONICAL_DIRECTIVES,
    detect_language_instruction,
)

# Fields copied over as a whole when the translation is a non-empty string.
OVERWRITE_FIELDS = (
    "name",
    "title",
    "variableName",
    "coreContext",
    "prologue",
    "prologueGuide",
    "statusTitle",
    "htmlContent",
    "achievementName",
    "description",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class MergeStats:
    """Counters from one merge."""

    applied: int
    skipped: int
    source_lang: str
    target_lang: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "skipped": self.skipped,
            "sourceLang": self.source_lang,
            "targetLang": self.target_lang,
        }


def rewrite_language_directive(
    text: str,
    instruction: Mapping[str, Any] | None,
    target_lang: str,
) -> str:
    """
    Point a non-English language directive in translated text at target_lang.

    The phrase matched at extraction is replaced first. When the translator
    already reworded it, the directive is detected again in the translated
    text. English directives are left alone.

    Args:
        text: Translated text.
        instruction: Directive detected in the source text, if any.
        target_lang: Target language code.

    Returns:
        Text with the directive rewritten.
    """
    if not text or not instruction or not instruction.get("found"):
        return text
    if instruction.get("lang") == "en":
        return text

    canonical = CANONICAL_DIRECTIVES.get(target_lang)
    if canonical is None:
        return text

    pattern = instruction.get("pattern")
    if pattern and pattern in text:
        return text.replace(pattern, canonical, 1)

    # a clause-spanning match would take unrelated translated words with it
    redetected = detect_language_instruction(text, anchored_only=True)
    if redetected.found and redetected.lang != "en" and redetected.pattern:
        return text.replace(redetected.pattern, canonical, 1)

    return text


class CanvasMerger:
    """Writes translated node projections into a clone of the original canvas."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        """
        Initialize merger.

        Args:
            clock: Source of the exportedAt timestamp.
        """
        self.clock = clock

    def merge(
        self,
        original: CanvasDocument,
        translated_batches: Mapping[BatchName | str, list[BatchItem]],
        extraction: ExtractionResult,
        target_lang: str,
    ) -> tuple[CanvasDocument, MergeStats]:
        """
        Merge translated batches into a new document.

        Args:
            original: Source document (left unchanged).
            translated_batches: Translated projections keyed by batch name.
            extraction: Extraction result holding the merge annotations.
            target_lang: Target language code.

        Returns:
            Tuple of (translated document, merge stats).
        """
        document = original.clone()
        source_lang = extraction.context.source_lang

        lookup = self._build_lookup(translated_batches)
        annotations = extraction.items_by_uid()

        applied = 0
        skipped = 0

        for uid, meta in document.metadata_set.items():
            translated = lookup.get(uid)
            if translated is None:
                skipped += 1
                continue

            self._apply(meta, translated, annotations.get(uid, {}), target_lang)
            applied += 1

        document.canvas["canvasLanguage"] = target_lang
        data = document.to_dict()
        data["exportedAt"] = format_timestamp(self.clock())
        data["translatedFrom"] = source_lang
        data["translatedTo"] = target_lang

        return document, MergeStats(
            applied=applied,
            skipped=skipped,
            source_lang=source_lang,
            target_lang=target_lang,
        )

    @staticmethod
    def _build_lookup(
        translated_batches: Mapping[BatchName | str, list[BatchItem]],
    ) -> dict[str, BatchItem]:
        by_name = {BatchName(key): items for key, items in translated_batches.items()}
        lookup: dict[str, BatchItem] = {}
        for name in BATCH_ORDER:
            for item in by_name.get(name) or []:
                uid = item.get("uid") if isinstance(item, dict) else None
                if isinstance(uid, str):
                    lookup[uid] = item
        return lookup

    def _apply(
        self,
        meta: dict[str, Any],
        translated: BatchItem,
        annotation: BatchItem,
        target_lang: str,
    ) -> None:
        for field_name in OVERWRITE_FIELDS:
            value = translated.get(field_name)
            if field_name in meta and isinstance(value, str) and value:
                meta[field_name] = value

        text = translated.get("text")
        if isinstance(text, str) and "text" in meta:
            meta["text"] = rewrite_language_directive(
                text, annotation.get("languageInstruction"), target_lang
            )

        # The extractor decides whether initialValue is translatable
        if "initialValue" in annotation and not annotation.get("initialValueIsEnglish"):
            value = translated.get("initialValue")
            if isinstance(value, str):
                meta["initialValue"] = value

        self._merge_list(meta.get("entries"), translated.get("entries"))
        self._merge_list(meta.get("images"), translated.get("images"))

    @staticmethod
    def _merge_list(original: Any, translated: Any) -> None:
        """Index-aligned merge touching only keys the original entry has."""
        if not isinstance(original, list) or not isinstance(translated, list):
            return
        for current, update in zip(original, translated):
            if not isinstance(current, dict) or not isinstance(update, dict):
                continue
            for key, value in update.items():
                if key in current and isinstance(value, str) and value:
                    current[key] = value
