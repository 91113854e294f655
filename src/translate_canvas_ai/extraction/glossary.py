"""
Extraction results: translation context, glossary and batches.

The glossary is the one piece of mutable state shared across a job: the
extractor fills its skeleton, the glossary translator fills translations,
and the batch translator only reads it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from translate_canvas_ai.extraction.language import LanguageInstruction

# A projection of one node as sent to the translation capability.
BatchItem = dict[str, Any]


class BatchName(str, Enum):
    """Batch buckets, declared in translation priority order."""

    STORY_CORE = "storyCore"
    VARIABLES = "variables"
    CHARACTERS = "characters"
    CHARACTER_TEXT = "characterText"
    CONTENT = "content"
    SYSTEM = "system"


# Later batches rely on names already fixed by earlier ones.
BATCH_ORDER: tuple[BatchName, ...] = tuple(BatchName)

# Projection keys that are annotations for the merger, not content.
ANNOTATION_KEYS = ("languageInstruction", "initialValueIsEnglish")


@dataclass
class GlossaryEntry:
    """One glossary entry: per-language translations plus a context note."""

    note: str = ""
    translations: dict[str, str] = field(default_factory=dict)

    def translation(self, lang: str) -> str | None:
        return self.translations.get(lang) or None

    def to_dict(self) -> dict[str, Any]:
        return {"note": self.note, **self.translations}


@dataclass
class LanguageInstructionRecord:
    """A detected directive and the node it was found in."""

    node_uid: str
    lang: str
    pattern: str

    def to_dict(self) -> dict[str, str]:
        return {"nodeUid": self.node_uid, "lang": self.lang, "pattern": self.pattern}


@dataclass
class Glossary:
    """Name and term dictionary keeping translations consistent across calls."""

    source_lang: str
    characters: dict[str, GlossaryEntry] = field(default_factory=dict)
    variables: dict[str, GlossaryEntry] = field(default_factory=dict)
    terms: dict[str, GlossaryEntry] = field(default_factory=dict)
    language_instructions: list[LanguageInstructionRecord] = field(default_factory=list)

    SECTIONS = ("characters", "variables", "terms")

    def section(self, name: str) -> dict[str, GlossaryEntry]:
        if name not in self.SECTIONS:
            raise KeyError(f"Unknown glossary section: {name}")
        return getattr(self, name)

    def __len__(self) -> int:
        return len(self.characters) + len(self.variables) + len(self.terms)

    def add_language_instruction(self, node_uid: str, instruction: LanguageInstruction) -> bool:
        """Record a directive unless the same exact phrase is already known."""
        if not instruction.found or instruction.pattern is None or instruction.lang is None:
            return False
        if any(rec.pattern == instruction.pattern for rec in self.language_instructions):
            return False
        self.language_instructions.append(
            LanguageInstructionRecord(
                node_uid=node_uid,
                lang=instruction.lang,
                pattern=instruction.pattern,
            )
        )
        return True

    def untranslated(self, target_lang: str) -> dict[str, list[dict[str, str]]]:
        """Entries lacking a translation for target_lang, grouped by section."""
        return {
            name: [
                {"original": original, "note": entry.note}
                for original, entry in self.section(name).items()
                if not entry.translation(target_lang)
            ]
            for name in self.SECTIONS
        }

    def apply_translations(self, target_lang: str, translations: dict[str, Any]) -> int:
        """
        Merge an {section: {original: translated}} mapping into the glossary.

        Unknown sections, unknown originals and non-string or blank values are
        ignored, leaving those entries untouched.

        Returns:
            Number of entries updated.
        """
        updated = 0
        for name in self.SECTIONS:
            mapping = translations.get(name)
            if not isinstance(mapping, dict):
                continue
            entries = self.section(name)
            for original, translated in mapping.items():
                entry = entries.get(original)
                if entry is None or not isinstance(translated, str) or not translated.strip():
                    continue
                entry.translations[target_lang] = translated.strip()
                updated += 1
        return updated

    def translated_pairs(self, name: str, target_lang: str) -> list[tuple[str, str]]:
        """(original, translation) pairs of a section that have a translation."""
        pairs = []
        for original, entry in self.section(name).items():
            translated = entry.translation(target_lang)
            if translated:
                pairs.append((original, translated))
        return pairs

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceLang": self.source_lang,
            "characters": {k: v.to_dict() for k, v in self.characters.items()},
            "variables": {k: v.to_dict() for k, v in self.variables.items()},
            "terms": {k: v.to_dict() for k, v in self.terms.items()},
            "languageInstructions": [rec.to_dict() for rec in self.language_instructions],
        }


@dataclass
class CharacterProfile:
    """Character description and voice notes for prompt context."""

    description: str = ""
    voice_style: str | None = None


@dataclass
class TranslationContext:
    """Story-level context shared by every translation call of a job."""

    source_lang: str
    story_summary: str = ""
    characters: dict[str, CharacterProfile] = field(default_factory=dict)
    # Recurring quoted terms, used as a free-form glossary hint
    glossary: list[str] = field(default_factory=list)
    node_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceLang": self.source_lang,
            "storySummary": self.story_summary,
            "characters": {
                name: {"description": p.description, "voiceStyle": p.voice_style}
                for name, p in self.characters.items()
            },
            "glossary": list(self.glossary),
            "nodeCount": self.node_count,
        }


@dataclass
class ExtractionResult:
    """Everything the later stages need from one extraction pass."""

    context: TranslationContext
    glossary: Glossary
    batches: dict[BatchName, list[BatchItem]]

    def batch_summary(self) -> dict[str, int]:
        return {name.value: len(self.batches.get(name, [])) for name in BATCH_ORDER}

    @property
    def total_items(self) -> int:
        return sum(len(items) for items in self.batches.values())

    def item(self, uid: str) -> BatchItem | None:
        """The extractor's own projection of a node (holds merge annotations)."""
        for items in self.batches.values():
            for item in items:
                if item["uid"] == uid:
                    return item
        return None

    def items_by_uid(self) -> dict[str, BatchItem]:
        return {item["uid"]: item for items in self.batches.values() for item in items}
