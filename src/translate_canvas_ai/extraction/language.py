"""
Language directive detection.

Canvas authors embed instructions such as "한국어로 작성" or "respond in
English" in update rules to tell the story model which language to write in.
These directives need special handling during translation, so they are
detected up front with a fixed, ordered pattern list.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

# Ordered: the first matching pattern wins. The third field marks the forms
# that may span a whole clause between the verb and the language name.
_DIRECTIVE_PATTERNS: list[tuple[re.Pattern[str], str, bool]] = [
    # Korean surface forms
    (re.compile(r"한국어로\s*(?:작성|출력|생성|응답)", re.IGNORECASE), "ko", False),
    (re.compile(r"한글로\s*(?:작성|출력|생성|응답)", re.IGNORECASE), "ko", False),
    (re.compile(r"(?:작성|출력|생성|응답).*한국어", re.IGNORECASE), "ko", True),
    (re.compile(r"(?:작성|출력|생성|응답).*한글", re.IGNORECASE), "ko", True),
    # Japanese surface forms
    (re.compile(r"日本語で\s*(?:書く|出力|生成|応答)", re.IGNORECASE), "ja", False),
    (re.compile(r"(?:書く|出力|生成|応答).*日本語", re.IGNORECASE), "ja", True),
    # English surface forms
    (
        re.compile(r"(?:write|output|respond|generate)\s+(?:in|using)\s+korean", re.IGNORECASE),
        "ko",
        False,
    ),
    (
        re.compile(r"(?:write|output|respond|generate)\s+(?:in|using)\s+japanese", re.IGNORECASE),
        "ja",
        False,
    ),
    (
        re.compile(r"(?:write|output|respond|generate)\s+(?:in|using)\s+english", re.IGNORECASE),
        "en",
        False,
    ),
    (re.compile(r"(?:in|using)\s+korean\b(?:\s*language)?", re.IGNORECASE), "ko", False),
    (re.compile(r"(?:in|using)\s+japanese\b(?:\s*language)?", re.IGNORECASE), "ja", False),
    (re.compile(r"(?:in|using)\s+english\b(?:\s*language)?", re.IGNORECASE), "en", False),
]

# Directive phrase written into translated text for each target language.
CANONICAL_DIRECTIVES = {
    "ko": "한국어로 작성",
    "ja": "日本語で書く",
    "en": "Write in English",
}

# Tunable: share of ASCII letters above which a value is treated as English.
ENGLISH_RATIO_THRESHOLD = 0.7


@dataclass(frozen=True)
class LanguageInstruction:
    """Result of directive detection."""

    found: bool
    lang: str | None = None
    pattern: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"found": self.found, "lang": self.lang, "pattern": self.pattern}


NOT_FOUND = LanguageInstruction(found=False)


def detect_language_instruction(
    text: str | None,
    anchored_only: bool = False,
) -> LanguageInstruction:
    """
    Detect an embedded "write in language X" directive.

    Args:
        text: Free text to scan.
        anchored_only: Skip the forms that may span a whole clause, so the
            matched phrase is only the directive itself.

    Returns:
        LanguageInstruction with the exact matched phrase, or NOT_FOUND.
    """
    if not text:
        return NOT_FOUND

    for regex, lang, spans_clause in _DIRECTIVE_PATTERNS:
        if anchored_only and spans_clause:
            continue
        match = regex.search(text)
        if match:
            return LanguageInstruction(found=True, lang=lang, pattern=match.group(0))

    return NOT_FOUND


def is_english_text(text: str | None) -> bool:
    """
    Heuristic check whether a short value is already English.

    Whitespace, digits and punctuation are ignored. A value made only of those
    (e.g. "0" or "-1") is language-neutral and counts as English.
    """
    if not text or not text.strip():
        return False

    letters = [
        ch
        for ch in text
        if not ch.isspace() and not ch.isdigit() and not unicodedata.category(ch).startswith("P")
    ]
    if not letters:
        return True

    ascii_letters = sum(1 for ch in letters if ("a" <= ch <= "z") or ("A" <= ch <= "Z"))
    return ascii_letters / len(letters) > ENGLISH_RATIO_THRESHOLD
