"""Canvas document model and merge."""

from translate_canvas_ai.canvas.merger import CanvasMerger, MergeStats
from translate_canvas_ai.canvas.models import (
    LANGUAGE_NAMES,
    SUPPORTED_LANGUAGES,
    CanvasDocument,
    NodeType,
    validate_language,
)

__all__ = [
    "CanvasDocument",
    "CanvasMerger",
    "LANGUAGE_NAMES",
    "MergeStats",
    "NodeType",
    "SUPPORTED_LANGUAGES",
    "validate_language",
]
