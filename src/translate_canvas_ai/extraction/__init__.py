"""Translatable content extraction."""

from translate_canvas_ai.extraction.extractor import CanvasExtractor
from translate_canvas_ai.extraction.glossary import (
    BATCH_ORDER,
    BatchName,
    ExtractionResult,
    Glossary,
    GlossaryEntry,
    TranslationContext,
)
from translate_canvas_ai.extraction.language import (
    LanguageInstruction,
    detect_language_instruction,
    is_english_text,
)

__all__ = [
    "BATCH_ORDER",
    "BatchName",
    "CanvasExtractor",
    "ExtractionResult",
    "Glossary",
    "GlossaryEntry",
    "LanguageInstruction",
    "TranslationContext",
    "detect_language_instruction",
    "is_english_text",
]
