"""
Exception hierarchy for translate-canvas-ai.

Fatal job errors derive from CanvasTranslationError so the request processor
can mark the request failed with a readable message. Validation findings are
never raised; they are reported through ValidationReport.
"""

from __future__ import annotations

from typing import Any


class CanvasTranslationError(Exception):
    """Base exception for all canvas translation errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """
        Initialize error.

        Args:
            message: Human-readable error message.
            details: Additional error details for the processing log.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for log context serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class MalformedCanvasError(CanvasTranslationError):
    """Raised when a canvas document cannot be parsed or fails schema checks."""


class UnsupportedLanguageError(CanvasTranslationError):
    """Raised for an unsupported language code or a source/target clash."""


class ExtractionError(CanvasTranslationError):
    """Raised when extraction breaks a batch invariant (e.g. duplicate node)."""


class TranslationError(CanvasTranslationError):
    """Raised when the translation capability fails or replies with bad data."""


class DeliveryError(CanvasTranslationError):
    """Raised when a delivery target rejects the translated canvas."""
