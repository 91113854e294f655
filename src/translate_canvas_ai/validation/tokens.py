"""
Token counting and per-field token limits.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import tiktoken

TokenCounter = Callable[[str], int]

DEFAULT_ENCODING = "o200k_base"

# Per-field limits enforced by the story platform
CHARACTER_TEXT_LIMIT = 30000
TEXT_NODE_LIMIT = 300
PROLOGUE_LIMIT = 700
PROLOGUE_GUIDE_LIMIT = 300
UPDATE_RULE_LIMIT = 400
STORY_TEXT_LIMIT = 30000

CORE_CONTEXT_BASE_LIMIT = 2000

# Extra coreContext room granted by each disabled feature
CORE_CONTEXT_INCREMENTS = {
    "disableDynamicMemory": 800,
    "disableAutoPlotCompression": 1200,
    "disableMacroPromptInjections": 1200,
    "disableDefaultContentPolicy": 800,
}
SYSTEM_INSTRUCTIONS_BOTH_CUES = 1500
SYSTEM_INSTRUCTIONS_ONE_CUE = 1000


def load_token_counter(encoding: str = DEFAULT_ENCODING) -> TokenCounter | None:
    """
    Build a token counter for a tiktoken encoding.

    tiktoken downloads encoding files on first use; when that fails (offline
    host, unknown encoding) None is returned and callers skip token checks.
    """
    try:
        encoder = tiktoken.get_encoding(encoding)
    except Exception:
        return None

    def count(text: str) -> int:
        return len(encoder.encode(text, disallowed_special=()))

    return count


def core_context_limit(advanced_settings: Mapping[str, Any] | None) -> int:
    """Token limit for a story's coreContext given its advanced settings."""
    limit = CORE_CONTEXT_BASE_LIMIT
    if not advanced_settings:
        return limit

    for flag, increment in CORE_CONTEXT_INCREMENTS.items():
        if advanced_settings.get(flag):
            limit += increment

    if advanced_settings.get("disableDefaultSystemInstructions"):
        narration = bool(advanced_settings.get("disableNarrationCue"))
        dialogue = bool(advanced_settings.get("disableDialogueCue"))
        if narration and dialogue:
            limit += SYSTEM_INSTRUCTIONS_BOTH_CUES
        elif narration or dialogue:
            limit += SYSTEM_INSTRUCTIONS_ONE_CUE

    return limit
