"""Tests for merging translated batches back into a canvas."""

import copy

import pytest

from translate_canvas_ai.canvas.merger import (
    format_timestamp,
    rewrite_language_directive,
)
from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.extraction import BatchName, CanvasExtractor

from conftest import FIXED_NOW, translate_item


@pytest.fixture
def extraction(document):
    return CanvasExtractor().extract(document)


@pytest.fixture
def translated_batches(extraction):
    return {name: [translate_item(item) for item in items] for name, items in extraction.batches.items()}


def test_format_timestamp():
    assert format_timestamp(FIXED_NOW) == "2026-01-02T03:04:05.678Z"


def test_merge_translates_fields(document, extraction, translated_batches, merger):
    merged, stats = merger.merge(document, translated_batches, extraction, "en")

    story = merged.raw_metadata("story-1")
    assert story["title"] == "Starlight Academy"
    assert story["prologue"] == "A spring day, in front of the school gate."
    assert "{{var_affection}}" in story["coreContext"]

    assert merged.raw_metadata("char-1")["name"] == "Haru"
    assert merged.raw_metadata("status-1")["htmlContent"] == "<div><b>Affection</b>: {{var_affection}}</div>"
    assert merged.raw_metadata("lore-1")["entries"][0]["key"] == "Starstone"
    assert merged.raw_metadata("img-1")["images"][0]["explain"] == "A school gate with cherry blossoms"

    assert stats.applied == 12
    assert stats.skipped == 1
    assert stats.source_lang == "ko"
    assert stats.target_lang == "en"


def test_merge_stamps_document(document, extraction, translated_batches, merger):
    merged, _ = merger.merge(document, translated_batches, extraction, "en")
    data = merged.to_dict()

    assert merged.language == "en"
    assert data["exportedAt"] == "2026-01-02T03:04:05.678Z"
    assert data["translatedFrom"] == "ko"
    assert data["translatedTo"] == "en"


def test_original_is_untouched(document, extraction, translated_batches, merger):
    before = copy.deepcopy(document.to_dict())
    merger.merge(document, translated_batches, extraction, "en")
    assert document.to_dict() == before


def test_non_text_data_is_preserved(document, extraction, translated_batches, merger):
    merged, _ = merger.merge(document, translated_batches, extraction, "en")

    assert merged.nodes == document.nodes
    assert merged.connections == document.connections
    assert merged.raw_metadata("trig-1") == document.raw_metadata("trig-1")
    assert merged.raw_metadata("story-1")["temperature"] == 0.8
    assert merged.raw_metadata("story-1")["advancedSettings"] == {"disableDynamicMemory": False}
    assert merged.raw_metadata("ach-1")["points"] == 10
    assert merged.raw_metadata("img-1")["images"][0]["url"] == "https://cdn.example/gate.png"
    assert merged.raw_metadata("lore-1")["entries"][0]["patterns"] == ["별빛석"]
    assert merged.raw_metadata("var-1")["variableName"] == "affection"


def test_merge_is_idempotent(document, extraction, translated_batches, merger):
    first, _ = merger.merge(document, translated_batches, extraction, "en")
    second, _ = merger.merge(document, translated_batches, extraction, "en")
    assert first.to_dict() == second.to_dict()


def test_empty_batches_skip_everything(document, extraction, merger):
    merged, stats = merger.merge(document, {}, extraction, "en")

    assert stats.applied == 0
    assert stats.skipped == document.node_count
    assert merged.raw_metadata("char-1") == document.raw_metadata("char-1")
    assert merged.language == "en"


def test_missing_items_are_skipped(document, extraction, translated_batches, merger):
    translated_batches[BatchName.SYSTEM] = []
    merged, stats = merger.merge(document, translated_batches, extraction, "en")

    assert stats.skipped == 4
    assert merged.raw_metadata("user-1")["text"] == "플레이어는 전학생이다."


def test_batches_keyed_by_string(document, extraction, translated_batches, merger):
    by_string = {name.value: items for name, items in translated_batches.items()}
    _, stats = merger.merge(document, by_string, extraction, "en")
    assert stats.applied == 12


def test_only_existing_fields_are_written(document, extraction, translated_batches, merger):
    for item in translated_batches[BatchName.CHARACTERS]:
        item["description"] = "invented"
        item["title"] = "invented"
    merged, _ = merger.merge(document, translated_batches, extraction, "en")

    character = merged.raw_metadata("char-1")
    assert "description" not in character
    assert "title" not in character


def test_empty_translation_keeps_original(document, extraction, translated_batches, merger):
    translated_batches[BatchName.CHARACTERS][0]["name"] = ""
    merged, _ = merger.merge(document, translated_batches, extraction, "en")
    assert merged.raw_metadata("char-1")["name"] == "하루"


class TestLanguageDirective:
    def test_directive_rewritten_to_target(self, document, extraction, translated_batches, merger):
        merged, _ = merger.merge(document, translated_batches, extraction, "en")
        text = merged.raw_metadata("rule-1")["text"]
        assert text == "Always Write in English. Update the {{var_affection}} value."

    def test_rewrite_to_japanese(self):
        instruction = {"found": True, "lang": "ko", "pattern": "한국어로 작성"}
        assert rewrite_language_directive("常に한국어로 작성", instruction, "ja") == "常に日本語で書く"

    def test_reworded_directive_is_detected_again(self):
        instruction = {"found": True, "lang": "ko", "pattern": "한국어로 작성"}
        text = "Always respond in Korean."
        assert rewrite_language_directive(text, instruction, "en") == "Always Write in English."

    def test_clause_between_verb_and_language_is_kept(self):
        instruction = {"found": True, "lang": "ko", "pattern": "한국어로 작성"}
        text = "出力する内容はキャラクターの口調を守り、日本語にすること。"
        assert rewrite_language_directive(text, instruction, "ja") == text

    def test_anchored_directive_inside_clause_is_rewritten(self):
        instruction = {"found": True, "lang": "ko", "pattern": "한국어로 작성"}
        text = "口調を守り、必ず日本語で出力すること。"
        assert rewrite_language_directive(text, instruction, "ja") == "口調を守り、必ず日本語で書くすること。"

    def test_english_directive_untouched(self):
        instruction = {"found": True, "lang": "en", "pattern": "Write in English"}
        text = "日本語のテキスト。Write in English"
        assert rewrite_language_directive(text, instruction, "ja") == text

    def test_no_directive(self):
        assert rewrite_language_directive("Hello", None, "en") == "Hello"
        assert rewrite_language_directive("Hello", {"found": False}, "en") == "Hello"

    def test_english_source_directive_kept_in_merge(self, canvas_data, merger):
        canvas_data["metadataSet"]["rule-1"]["text"] = "Write in English. {{var_affection}} 값을 갱신한다."
        document = CanvasDocument(canvas_data)
        extraction = CanvasExtractor().extract(document)
        batches = {
            BatchName.CONTENT: [
                {"uid": "rule-1", "text": "Write in English. {{var_affection}}の値を更新する。"}
            ]
        }
        merged, _ = merger.merge(document, batches, extraction, "ja")
        assert merged.raw_metadata("rule-1")["text"].startswith("Write in English.")


class TestInitialValue:
    def test_english_initial_value_untouched(self, document, extraction, translated_batches, merger):
        for item in translated_batches[BatchName.VARIABLES]:
            item["initialValue"] = "changed"
        merged, _ = merger.merge(document, translated_batches, extraction, "en")

        assert merged.raw_metadata("var-1")["initialValue"] == "0"
        assert merged.raw_metadata("var-2")["initialValue"] == "changed"

    def test_korean_initial_value_translated(self, document, extraction, translated_batches, merger):
        merged, _ = merger.merge(document, translated_batches, extraction, "en")
        assert merged.raw_metadata("var-2")["initialValue"] == "Good"

    def test_non_string_initial_value_untouched(self, canvas_data, merger):
        canvas_data["metadataSet"]["var-2"]["initialValue"] = 3
        document = CanvasDocument(canvas_data)
        extraction = CanvasExtractor().extract(document)
        batches = {BatchName.VARIABLES: [{"uid": "var-2", "initialValue": "three"}]}

        merged, _ = merger.merge(document, batches, extraction, "en")
        assert merged.raw_metadata("var-2")["initialValue"] == 3
