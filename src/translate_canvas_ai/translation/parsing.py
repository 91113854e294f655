"""
Structured reply parsing.

Translation replies are meant to be bare JSON but models sometimes wrap them
in markdown fences or add a sentence around them.
"""

from __future__ import annotations

import json
import re
from typing import Any

from translate_canvas_ai.errors import TranslationError

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")


def strip_code_fence(content: str) -> str:
    """Remove a surrounding ```/```json fence if present."""
    content = content.strip()
    if content.startswith("```"):
        content = _FENCE_OPEN.sub("", content, count=1)
        content = _FENCE_CLOSE.sub("", content, count=1)
    return content.strip()


def parse_json_reply(content: str, expected: type[list] | type[dict]) -> Any:
    """
    Parse a JSON array or object out of a model reply.

    Args:
        content: Raw reply text.
        expected: ``list`` or ``dict``.

    Returns:
        The decoded value.

    Raises:
        TranslationError: If no JSON value of the expected shape is found.
    """
    text = strip_code_fence(content)
    kind = "array" if expected is list else "object"

    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        # Fall back to the outermost bracketed span in the reply
        pattern = r"\[.*\]" if expected is list else r"\{.*\}"
        match = re.search(pattern, text, re.DOTALL)
        if not match:
            raise TranslationError(
                f"Reply is not valid JSON (expected an {kind})",
                details={"preview": text[:200]},
            ) from None
        try:
            value = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise TranslationError(
                f"Reply is not valid JSON (expected an {kind}): {e}",
                details={"preview": text[:200]},
            ) from e

    if not isinstance(value, expected):
        raise TranslationError(
            f"Expected a JSON {kind}, got {type(value).__name__}",
            details={"preview": text[:200]},
        )
    return value
