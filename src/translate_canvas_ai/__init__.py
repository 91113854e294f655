"""
translate-canvas-ai: AI-powered StoryChat canvas translation.

This package provides tools for:
- Extracting translatable content and a consistency glossary from a canvas
- Glossary-first, chunked batch translation through an LLM backend
- Merging translations back without touching identifiers or structure
- Validating the result for leftovers, broken references and token limits
- A DuckDB-backed request queue with account import and e-mail delivery
"""

__version__ = "0.1.0"

from translate_canvas_ai.canvas import CanvasDocument, CanvasMerger, MergeStats, NodeType
from translate_canvas_ai.config import Settings, load_config
from translate_canvas_ai.database import Database, Stage, Status, TranslationRequest
from translate_canvas_ai.errors import (
    CanvasTranslationError,
    DeliveryError,
    ExtractionError,
    MalformedCanvasError,
    TranslationError,
    UnsupportedLanguageError,
)
from translate_canvas_ai.extraction import CanvasExtractor, ExtractionResult
from translate_canvas_ai.processor import RequestProcessor, build_processor
from translate_canvas_ai.translation import CanvasTranslationPipeline, PipelineResult
from translate_canvas_ai.validation import CanvasValidator, ValidationReport

__all__ = [
    # Canvas
    "CanvasDocument",
    "CanvasMerger",
    "MergeStats",
    "NodeType",
    # Config
    "Settings",
    "load_config",
    # Database
    "Database",
    "TranslationRequest",
    "Status",
    "Stage",
    # Errors
    "CanvasTranslationError",
    "MalformedCanvasError",
    "UnsupportedLanguageError",
    "ExtractionError",
    "TranslationError",
    "DeliveryError",
    # Extraction
    "CanvasExtractor",
    "ExtractionResult",
    # Translation
    "CanvasTranslationPipeline",
    "PipelineResult",
    # Validation
    "CanvasValidator",
    "ValidationReport",
    # Queue
    "RequestProcessor",
    "build_processor",
]
