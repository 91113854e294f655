"""Translated canvas validation."""

from translate_canvas_ai.validation.tokens import core_context_limit, load_token_counter
from translate_canvas_ai.validation.validator import (
    CanvasValidator,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    "CanvasValidator",
    "ValidationIssue",
    "ValidationReport",
    "core_context_limit",
    "load_token_counter",
]
