"""
Canvas content extraction.

Walks the metadata set of a canvas, decides which fragments are prose worth
translating, and groups node projections into batches. Also builds the
translation context (story summary, character voice notes) and the glossary
skeleton used to keep names consistent across translation calls.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

from translate_canvas_ai.canvas.models import (
    AchievementNode,
    CanvasDocument,
    CharacterNode,
    ImageNode,
    LorebookNode,
    NodeType,
    StatusViewNode,
    StoryNode,
    TextNode,
    UpdateRuleNode,
    UserNode,
    VariableNode,
    node_type_of,
)
from translate_canvas_ai.errors import ExtractionError
from translate_canvas_ai.extraction.glossary import (
    ANNOTATION_KEYS,
    BATCH_ORDER,
    BatchItem,
    BatchName,
    CharacterProfile,
    ExtractionResult,
    Glossary,
    GlossaryEntry,
    TranslationContext,
)
from translate_canvas_ai.extraction.language import detect_language_instruction, is_english_text

# Text between East-Asian corner brackets or Western quotes.
_QUOTED_TERM = re.compile(r"[「『\"'“‘]([^」』\"'”’“‘]+)[」』\"'”’]")

_IDENTITY_KEYS = ("uid", "type", "name", "title")

Projector = Callable[[str, Any, TranslationContext, Glossary], "tuple[BatchName | None, BatchItem]"]


def _truncate(text: str, length: int, ellipsis: bool = False) -> str:
    if len(text) <= length:
        return text
    return text[:length] + ("..." if ellipsis else "")


class CanvasExtractor:
    """
    Extracts translatable content from a canvas document.

    Every node type maps to exactly one projector; trigger nodes project to
    no batch because they carry executable logic rather than prose.
    """

    SUMMARY_LENGTH = 500
    DESCRIPTION_LENGTH = 200
    NOTE_LENGTH = 100
    VOICE_STYLE_LENGTH = 150

    MIN_TERM_LENGTH = 2
    MAX_TERM_LENGTH = 20
    MIN_TERM_COUNT = 2
    MAX_HINT_TERMS = 20

    def __init__(self) -> None:
        self._projectors: dict[NodeType, Projector] = {
            NodeType.STORY: self._project_story,
            NodeType.CHARACTER: self._project_character,
            NodeType.TEXT: self._project_text,
            NodeType.UPDATE_RULE: self._project_update_rule,
            NodeType.VARIABLE: self._project_variable,
            NodeType.USER: self._project_user,
            NodeType.LOREBOOK: self._project_lorebook,
            NodeType.ACHIEVEMENT: self._project_achievement,
            NodeType.STATUS_VIEW: self._project_status_view,
            NodeType.IMAGE: self._project_image,
            NodeType.TRIGGER: self._project_trigger,
        }

    @property
    def handled_types(self) -> set[NodeType]:
        return set(self._projectors)

    def extract(self, document: CanvasDocument) -> ExtractionResult:
        """
        Extract context, glossary skeleton and batches from a canvas.

        Args:
            document: Parsed canvas document (not modified).

        Returns:
            ExtractionResult for the translation stages.
        """
        nodes = list(document.iter_metadata())
        source_lang = document.language

        context = TranslationContext(source_lang=source_lang, node_count=len(nodes))
        glossary = Glossary(source_lang=source_lang)

        context.story_summary = self._story_summary(nodes)
        self._collect_characters(nodes, context, glossary)
        self._collect_variables(nodes, glossary)
        self._collect_lorebook_terms(nodes, glossary)
        self._collect_voice_styles(nodes, context)
        context.glossary = self._recurring_quoted_terms(nodes)

        batches = self._build_batches(nodes, context, glossary)

        return ExtractionResult(context=context, glossary=glossary, batches=batches)

    # ==================== Context & Glossary ====================

    def _story_summary(self, nodes: list[tuple[str, Any]]) -> str:
        for _, node in nodes:
            if isinstance(node, StoryNode) and node.core_context:
                return _truncate(node.core_context, self.SUMMARY_LENGTH, ellipsis=True)
        return ""

    def _collect_characters(
        self,
        nodes: list[tuple[str, Any]],
        context: TranslationContext,
        glossary: Glossary,
    ) -> None:
        for _, node in nodes:
            if not isinstance(node, CharacterNode) or not node.name:
                continue
            text = node.text or ""
            context.characters[node.name] = CharacterProfile(
                description=text[: self.DESCRIPTION_LENGTH],
            )
            glossary.characters[node.name] = GlossaryEntry(note=text[: self.NOTE_LENGTH])

    def _collect_variables(self, nodes: list[tuple[str, Any]], glossary: Glossary) -> None:
        for _, node in nodes:
            if not isinstance(node, VariableNode) or not node.variable_name:
                continue
            note = ""
            if node.initial_value is not None:
                note = f"initial value: {json.dumps(node.initial_value, ensure_ascii=False)}"
            glossary.variables[node.variable_name] = GlossaryEntry(note=note)

    def _collect_lorebook_terms(self, nodes: list[tuple[str, Any]], glossary: Glossary) -> None:
        for _, node in nodes:
            if not isinstance(node, LorebookNode) or not node.entries:
                continue
            for entry in node.entries:
                if entry.key and entry.key not in glossary.terms:
                    glossary.terms[entry.key] = GlossaryEntry(note="lorebook entry")

    def _collect_voice_styles(
        self, nodes: list[tuple[str, Any]], context: TranslationContext
    ) -> None:
        for _, node in nodes:
            if not isinstance(node, TextNode) or not node.text:
                continue
            for char_name in context.characters:
                if self._mentions(node, char_name):
                    context.characters[char_name].voice_style = _truncate(
                        node.text, self.VOICE_STYLE_LENGTH, ellipsis=True
                    )

    def _recurring_quoted_terms(self, nodes: list[tuple[str, Any]]) -> list[str]:
        texts: list[str] = []
        for _, node in nodes:
            for attr in ("text", "core_context", "prologue"):
                value = getattr(node, attr, None)
                if value:
                    texts.append(value)
        combined = " ".join(texts)

        counts: dict[str, int] = {}
        for match in _QUOTED_TERM.findall(combined):
            term = match.strip()
            if self.MIN_TERM_LENGTH <= len(term) <= self.MAX_TERM_LENGTH:
                counts[term] = counts.get(term, 0) + 1

        # dicts keep first-seen order
        recurring = [term for term, count in counts.items() if count >= self.MIN_TERM_COUNT]
        return recurring[: self.MAX_HINT_TERMS]

    @staticmethod
    def _mentions(node: Any, char_name: str) -> bool:
        return bool(
            (node.name and char_name in node.name) or (node.title and char_name in node.title)
        )

    # ==================== Batches ====================

    def _build_batches(
        self,
        nodes: list[tuple[str, Any]],
        context: TranslationContext,
        glossary: Glossary,
    ) -> dict[BatchName, list[BatchItem]]:
        batches: dict[BatchName, list[BatchItem]] = {name: [] for name in BATCH_ORDER}
        assigned: set[str] = set()

        for uid, node in nodes:
            node_type = node_type_of(node)
            projector = self._projectors.get(node_type)
            if projector is None:
                raise ExtractionError(f"No projector for node type {node_type.value}")

            batch, item = projector(uid, node, context, glossary)
            if batch is None or not self._is_translatable(item):
                continue

            if uid in assigned:
                raise ExtractionError(
                    f"Node {uid} assigned to more than one batch",
                    details={"uid": uid, "batch": batch.value},
                )
            assigned.add(uid)
            batches[batch].append(item)

        return batches

    @staticmethod
    def _is_translatable(item: BatchItem) -> bool:
        has_content = any(
            value
            for key, value in item.items()
            if key not in _IDENTITY_KEYS and key not in ANNOTATION_KEYS
        )
        return has_content or bool(item.get("name")) or bool(item.get("title"))

    @staticmethod
    def _base_item(uid: str, node: Any) -> BatchItem:
        return {
            "uid": uid,
            "type": node.type,
            "name": node.name or None,
            "title": node.title or None,
        }

    def _project_story(
        self, uid: str, node: StoryNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.core_context:
            item["coreContext"] = node.core_context
        if node.prologue:
            item["prologue"] = node.prologue
        if node.prologue_guide:
            item["prologueGuide"] = node.prologue_guide
        if node.text:
            item["text"] = node.text
        return BatchName.STORY_CORE, item

    def _project_character(
        self, uid: str, node: CharacterNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.text:
            item["text"] = node.text
        return BatchName.CHARACTERS, item

    def _project_text(
        self, uid: str, node: TextNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.text:
            item["text"] = node.text
        is_character_text = any(self._mentions(node, name) for name in context.characters)
        return (BatchName.CHARACTER_TEXT if is_character_text else BatchName.CONTENT), item

    def _project_update_rule(
        self, uid: str, node: UpdateRuleNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.text:
            item["text"] = node.text
            instruction = detect_language_instruction(node.text)
            if instruction.found:
                item["languageInstruction"] = instruction.to_dict()
                glossary.add_language_instruction(uid, instruction)
        return BatchName.CONTENT, item

    def _project_variable(
        self, uid: str, node: VariableNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if not node.variable_name:
            return None, item
        item["variableName"] = node.variable_name
        value = node.initial_value
        if isinstance(value, str) and value.strip():
            item["initialValue"] = value
            item["initialValueIsEnglish"] = is_english_text(value)
        return BatchName.VARIABLES, item

    def _project_user(
        self, uid: str, node: UserNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.text:
            item["text"] = node.text
        return BatchName.SYSTEM, item

    def _project_lorebook(
        self, uid: str, node: LorebookNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.entries:
            item["entries"] = [{"key": entry.key, "text": entry.text} for entry in node.entries]
        return BatchName.CONTENT, item

    def _project_achievement(
        self, uid: str, node: AchievementNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.achievement_name:
            item["achievementName"] = node.achievement_name
        if node.description:
            item["description"] = node.description
        return BatchName.SYSTEM, item

    def _project_status_view(
        self, uid: str, node: StatusViewNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if node.status_title:
            item["statusTitle"] = node.status_title
        if node.html_content:
            item["htmlContent"] = node.html_content
        return BatchName.SYSTEM, item

    def _project_image(
        self, uid: str, node: ImageNode, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        item = self._base_item(uid, node)
        if not node.images or not any(image.explain for image in node.images):
            return None, item
        # Index-aligned with the node's images so the merge can match positions
        item["images"] = [{"explain": image.explain or None} for image in node.images]
        return BatchName.CONTENT, item

    def _project_trigger(
        self, uid: str, node: Any, context: TranslationContext, glossary: Glossary
    ) -> tuple[BatchName | None, BatchItem]:
        return None, self._base_item(uid, node)
