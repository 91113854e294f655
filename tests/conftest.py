"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from translate_canvas_ai.canvas.merger import CanvasMerger
from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.database import Database
from translate_canvas_ai.llm.base import LLMProvider, LLMResponse
from translate_canvas_ai.validation.validator import CanvasValidator

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

SAMPLE_CANVAS: dict[str, Any] = {
    "canvas": {
        "canvasLanguage": "ko",
        "compilerVersion": 4,
        "embeddingService": "gemini",
    },
    "nodes": [
        {"uid": "story-1", "type": "story", "coordinates": {"x": 0, "y": 0}},
        {"uid": "char-1", "type": "character", "coordinates": {"x": 100, "y": 0}},
        {"uid": "text-1", "type": "text", "coordinates": {"x": 200, "y": 0}},
        {"uid": "text-2", "type": "text", "coordinates": {"x": 300, "y": 0}},
        {"uid": "rule-1", "type": "updateRule", "coordinates": {"x": 0, "y": 100}},
        {"uid": "var-1", "type": "variable", "coordinates": {"x": 100, "y": 100}},
        {"uid": "var-2", "type": "variable", "coordinates": {"x": 200, "y": 100}},
        {"uid": "user-1", "type": "user", "coordinates": {"x": 300, "y": 100}},
        {"uid": "lore-1", "type": "lorebook", "coordinates": {"x": 0, "y": 200}},
        {"uid": "ach-1", "type": "achievement", "coordinates": {"x": 100, "y": 200}},
        {"uid": "status-1", "type": "statusView", "coordinates": {"x": 200, "y": 200}},
        {"uid": "img-1", "type": "image", "coordinates": {"x": 300, "y": 200}},
        {"uid": "trig-1", "type": "trigger", "coordinates": {"x": 0, "y": 300}},
        {"uid": "gone-1", "type": "text", "deleted": True},
    ],
    "connections": [
        {"from": "story-1", "to": "char-1"},
        {"from": "rule-1", "to": "var-1"},
        {"from": "trig-1", "to": "ach-1"},
    ],
    "metadataSet": {
        "story-1": {
            "type": "story",
            "title": "별빛 학원",
            "coreContext": "별빛 학원에 입학한 주인공의 이야기. {{var_affection}} 수치에 따라 결말이 달라진다.",
            "prologue": "봄날, 교문 앞에서.",
            "prologueGuide": "주인공을 소개한다.",
            "advancedSettings": {"disableDynamicMemory": False},
            "temperature": 0.8,
        },
        "char-1": {
            "type": "character",
            "name": "하루",
            "text": "하루는 밝고 명랑한 학생이다.",
        },
        "text-1": {
            "type": "text",
            "name": "하루의 말투",
            "text": "하루는 반말로 말한다.",
        },
        "text-2": {
            "type": "text",
            "title": "배경",
            "text": "학원은 산 위에 있다.",
        },
        "rule-1": {
            "type": "updateRule",
            "name": "호감도 규칙",
            "text": "항상 한국어로 작성. {{var_affection}} 값을 갱신한다.",
        },
        "var-1": {
            "type": "variable",
            "name": "호감도",
            "variableName": "affection",
            "initialValue": "0",
        },
        "var-2": {
            "type": "variable",
            "name": "기분",
            "variableName": "mood",
            "initialValue": "좋음",
        },
        "user-1": {
            "type": "user",
            "name": "플레이어",
            "text": "플레이어는 전학생이다.",
        },
        "lore-1": {
            "type": "lorebook",
            "name": "세계관",
            "entries": [{"key": "별빛석", "text": "빛나는 돌.", "patterns": ["별빛석"]}],
        },
        "ach-1": {
            "type": "achievement",
            "name": "첫 만남",
            "achievementName": "첫 만남",
            "description": "하루를 만났다.",
            "points": 10,
        },
        "status-1": {
            "type": "statusView",
            "name": "상태창",
            "statusTitle": "상태",
            "htmlContent": "<div><b>호감도</b>: {{var_affection}}</div>",
        },
        "img-1": {
            "type": "image",
            "name": "교문",
            "images": [{"url": "https://cdn.example/gate.png", "explain": "벚꽃이 핀 교문"}],
        },
        "trig-1": {
            "type": "trigger",
            "name": "ending-trigger",
            "conditions": [{"variable": "affection", "op": ">=", "value": 10}],
        },
    },
}

# What a well-behaved model returns for every Korean string of the sample.
# The update rule keeps its directive verbatim, as models often do.
TRANSLATIONS = {
    "별빛 학원": "Starlight Academy",
    "별빛 학원에 입학한 주인공의 이야기. {{var_affection}} 수치에 따라 결말이 달라진다.": (
        "The story of a hero entering Starlight Academy. The ending depends on {{var_affection}}."
    ),
    "봄날, 교문 앞에서.": "A spring day, in front of the school gate.",
    "주인공을 소개한다.": "Introduce the hero.",
    "하루": "Haru",
    "하루는 밝고 명랑한 학생이다.": "Haru is a bright, cheerful student.",
    "하루의 말투": "Haru's speech",
    "하루는 반말로 말한다.": "Haru speaks casually.",
    "배경": "Setting",
    "학원은 산 위에 있다.": "The academy sits on a mountain.",
    "호감도 규칙": "Affection rule",
    "항상 한국어로 작성. {{var_affection}} 값을 갱신한다.": (
        "Always 한국어로 작성. Update the {{var_affection}} value."
    ),
    "호감도": "Affection",
    "기분": "Mood",
    "좋음": "Good",
    "플레이어": "Player",
    "플레이어는 전학생이다.": "The player is a transfer student.",
    "세계관": "World",
    "별빛석": "Starstone",
    "빛나는 돌.": "A glowing stone.",
    "첫 만남": "First meeting",
    "하루를 만났다.": "Met Haru.",
    "상태창": "Status window",
    "상태": "Status",
    "<div><b>호감도</b>: {{var_affection}}</div>": "<div><b>Affection</b>: {{var_affection}}</div>",
    "교문": "School gate",
    "벚꽃이 핀 교문": "A school gate with cherry blossoms",
}

_BATCH_INPUT = re.compile(r"## Input \([^)]*\):\n(.*)\n\n## Output:", re.DOTALL)
_GLOSSARY_INPUT = re.compile(r"## Terms to Translate:\n(.*)\n\n## Output Format:", re.DOTALL)
_UNTOUCHED_KEYS = ("uid", "type", "languageInstruction", "initialValueIsEnglish")


def translate_text(text: str) -> str:
    return TRANSLATIONS.get(text, text)


def translate_item(value: Any, translate: Callable[[str], str] = translate_text) -> Any:
    if isinstance(value, str):
        return translate(value)
    if isinstance(value, list):
        return [translate_item(v, translate) for v in value]
    if isinstance(value, dict):
        return {
            key: v if key in _UNTOUCHED_KEYS else translate_item(v, translate)
            for key, v in value.items()
        }
    return value


class FakeLLMProvider(LLMProvider):
    """
    Scripted translation backend.

    Answers glossary and batch prompts by translating the JSON embedded in
    the prompt. ``reply`` overrides the answer; ``error`` makes every call
    raise.
    """

    def __init__(
        self,
        translate: Callable[[str], str] = translate_text,
        reply: Callable[[str], str] | None = None,
        error: Exception | None = None,
        model: str = "fake/model",
    ):
        self._translate = translate
        self._reply = reply
        self._error = error
        self._model = model
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return self._model

    @property
    def batch_calls(self) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == "batch"]

    @property
    def glossary_calls(self) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == "glossary"]

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.3,
        max_tokens: int = 4096,
        **kwargs: Any,
    ) -> LLMResponse:
        prompt = messages[-1]["content"]
        glossary_match = _GLOSSARY_INPUT.search(prompt)
        kind = "glossary" if glossary_match else "batch"
        self.calls.append({"kind": kind, "prompt": prompt, "max_tokens": max_tokens})

        if self._error is not None:
            raise self._error
        if self._reply is not None:
            return LLMResponse(content=self._reply(prompt), model=self._model)

        if glossary_match:
            untranslated = json.loads(glossary_match.group(1))
            content = {
                section: {entry["original"]: self._translate(entry["original"]) for entry in entries}
                for section, entries in untranslated.items()
            }
        else:
            items = json.loads(_BATCH_INPUT.search(prompt).group(1))
            content = [translate_item(item, self._translate) for item in items]

        return LLMResponse(
            content=json.dumps(content, ensure_ascii=False),
            input_tokens=len(prompt) // 4,
            output_tokens=10,
            model=self._model,
        )


def word_count(text: str) -> int:
    return len(text.split())


@pytest.fixture
def canvas_data() -> dict[str, Any]:
    return copy.deepcopy(SAMPLE_CANVAS)


@pytest.fixture
def document(canvas_data) -> CanvasDocument:
    return CanvasDocument(canvas_data)


@pytest.fixture
def fake_provider() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def merger() -> CanvasMerger:
    return CanvasMerger(clock=lambda: FIXED_NOW)


@pytest.fixture
def validator() -> CanvasValidator:
    return CanvasValidator(token_counter=word_count)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def log_records() -> list[tuple[str, str, dict[str, Any]]]:
    return []


@pytest.fixture
def log_callback(log_records):
    def callback(level: str, message: str, context: dict[str, Any]) -> None:
        log_records.append((level, message, context))

    return callback
