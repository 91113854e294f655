"""Tests for language directive detection and the English heuristic."""

import pytest

from translate_canvas_ai.extraction.language import (
    NOT_FOUND,
    detect_language_instruction,
    is_english_text,
)


@pytest.mark.parametrize(
    "text, lang, pattern",
    [
        ("항상 한국어로 작성하세요.", "ko", "한국어로 작성"),
        ("대사는 한글로 출력", "ko", "한글로 출력"),
        ("모든 응답은 한국어", "ko", "응답은 한국어"),
        ("必ず日本語で書くこと", "ja", "日本語で書く"),
        ("Always respond in Korean.", "ko", "respond in Korean"),
        ("Please write using Japanese", "ja", "write using Japanese"),
        ("Output in English only", "en", "Output in English"),
        ("Narrate in korean language", "ko", "in korean language"),
        ("Keep it in English.", "en", "in English"),
    ],
)
def test_detects_directive(text, lang, pattern):
    instruction = detect_language_instruction(text)
    assert instruction.found
    assert instruction.lang == lang
    assert instruction.pattern == pattern


def test_first_pattern_wins():
    # Korean surface form precedes the English one in the pattern list
    instruction = detect_language_instruction("Write in English, 한국어로 작성 금지")
    assert instruction.lang == "ko"


@pytest.mark.parametrize("text", [None, "", "호감도를 1 올린다.", "Increase affection by one."])
def test_no_directive(text):
    assert detect_language_instruction(text) == NOT_FOUND


def test_to_dict():
    assert detect_language_instruction("한국어로 응답").to_dict() == {
        "found": True,
        "lang": "ko",
        "pattern": "한국어로 응답",
    }


class TestIsEnglishText:
    @pytest.mark.parametrize("text", ["happy", "Level 3 - Rookie", "0", "-1", "100%"])
    def test_english_or_neutral(self, text):
        assert is_english_text(text)

    @pytest.mark.parametrize("text", ["좋음", "元気", "좋음 good", None, "", "   "])
    def test_not_english(self, text):
        assert not is_english_text(text)


def test_anchored_only_skips_clause_spanning_forms():
    text = "출력 형식은 자유롭게, 대사는 한국어"
    assert detect_language_instruction(text).pattern == "출력 형식은 자유롭게, 대사는 한국어"
    assert detect_language_instruction(text, anchored_only=True) == NOT_FOUND

    anchored = detect_language_instruction("대사는 한글로 출력", anchored_only=True)
    assert anchored.pattern == "한글로 출력"
