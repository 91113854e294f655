"""
Translated canvas validation.

Three independent checks run over a merged document:

1. untranslated: text fields still containing source-language script
2. invalid_refs: {{var_*}} placeholders naming no variable
3. over_limit: fields above the platform's token limits

Findings never raise; the report is advisory and is logged with the job.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from translate_canvas_ai.canvas.models import CanvasDocument, NodeType
from translate_canvas_ai.validation.tokens import (
    CHARACTER_TEXT_LIMIT,
    DEFAULT_ENCODING,
    PROLOGUE_GUIDE_LIMIT,
    PROLOGUE_LIMIT,
    STORY_TEXT_LIMIT,
    TEXT_NODE_LIMIT,
    UPDATE_RULE_LIMIT,
    TokenCounter,
    core_context_limit,
    load_token_counter,
)

SOURCE_SCRIPT_PATTERNS = {
    "ko": re.compile(r"[가-힯ᄀ-ᇿ㄰-㆏]"),
    "ja": re.compile(r"[぀-ゟ゠-ヿ]"),
    "en": re.compile(r"^[\x00-\x7F]*$"),
}

LEAKAGE_FIELDS = (
    "text",
    "name",
    "title",
    "variableName",
    "coreContext",
    "prologue",
    "prologueGuide",
    "statusTitle",
    "achievementName",
    "description",
)

REFERENCE_FIELDS = ("text", "coreContext", "prologue", "prologueGuide")

VAR_REFERENCE = re.compile(r"\{\{var_[^}]+\}\}")

PREVIEW_LENGTH = 40

# (field, value, limit) triples for one node
LimitChecks = list[tuple[str, str, int]]


def _preview(text: str) -> str:
    return text[:PREVIEW_LENGTH].replace("\n", " ")


def _short_uid(uid: str) -> str:
    return uid[:8]


def _node_name(uid: str, meta: dict[str, Any]) -> str:
    return meta.get("name") or meta.get("title") or meta.get("variableName") or _short_uid(uid)


@dataclass
class ValidationIssue:
    """One failed check and its offending items."""

    type: str
    message: str
    items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message, "items": self.items}


@dataclass
class ValidationReport:
    """Outcome of validating one translated document."""

    passed: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def issue(self, issue_type: str) -> ValidationIssue | None:
        for error in self.errors:
            if error.type == issue_type:
                return error
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "errors": [error.to_dict() for error in self.errors],
            "warnings": list(self.warnings),
            "stats": dict(self.stats),
        }


def _story_limits(meta: dict[str, Any]) -> LimitChecks:
    checks: LimitChecks = []
    if meta.get("coreContext"):
        checks.append(
            ("coreContext", meta["coreContext"], core_context_limit(meta.get("advancedSettings")))
        )
    if meta.get("prologue"):
        checks.append(("prologue", meta["prologue"], PROLOGUE_LIMIT))
    if meta.get("prologueGuide"):
        checks.append(("prologueGuide", meta["prologueGuide"], PROLOGUE_GUIDE_LIMIT))
    if meta.get("text"):
        checks.append(("text", meta["text"], STORY_TEXT_LIMIT))
    return checks


def _text_limit(limit: int) -> Callable[[dict[str, Any]], LimitChecks]:
    def checks(meta: dict[str, Any]) -> LimitChecks:
        return [("text", meta["text"], limit)] if meta.get("text") else []

    return checks


def _no_limits(meta: dict[str, Any]) -> LimitChecks:
    return []


TOKEN_LIMITS: dict[NodeType, Callable[[dict[str, Any]], LimitChecks]] = {
    NodeType.STORY: _story_limits,
    NodeType.CHARACTER: _text_limit(CHARACTER_TEXT_LIMIT),
    NodeType.TEXT: _text_limit(TEXT_NODE_LIMIT),
    NodeType.UPDATE_RULE: _text_limit(UPDATE_RULE_LIMIT),
    NodeType.VARIABLE: _no_limits,
    NodeType.USER: _no_limits,
    NodeType.LOREBOOK: _no_limits,
    NodeType.ACHIEVEMENT: _no_limits,
    NodeType.STATUS_VIEW: _no_limits,
    NodeType.IMAGE: _no_limits,
    NodeType.TRIGGER: _no_limits,
}


class CanvasValidator:
    """Validates translated canvases."""

    _UNSET: Any = object()

    def __init__(
        self,
        token_counter: TokenCounter | None = _UNSET,
        encoding: str = DEFAULT_ENCODING,
    ):
        """
        Initialize validator.

        Args:
            token_counter: Callable returning the token count of a string.
                Defaults to a tiktoken counter for ``encoding``; pass None to
                disable the token check.
            encoding: tiktoken encoding used when no counter is given.
        """
        if token_counter is self._UNSET:
            token_counter = load_token_counter(encoding)
        self.token_counter = token_counter
        self.encoding = encoding

    def validate(self, document: CanvasDocument, source_lang: str) -> ValidationReport:
        """
        Validate a translated document.

        Args:
            document: Merged document.
            source_lang: Language the document was translated from.

        Returns:
            ValidationReport; ``passed`` is True only with zero findings.
        """
        metadata = document.metadata_set
        warnings: list[str] = []

        untranslated = self._check_leakage(metadata, source_lang)
        invalid_refs, variable_count = self._check_references(metadata)

        if self.token_counter is None:
            over_limit: list[dict[str, Any]] = []
            total_tokens = 0
            warnings.append(f"Token check skipped: tokenizer {self.encoding} unavailable")
        else:
            over_limit, total_tokens = self._check_token_limits(metadata, self.token_counter)

        errors: list[ValidationIssue] = []
        if untranslated:
            errors.append(
                ValidationIssue(
                    type="untranslated",
                    message=f"{len(untranslated)} fields contain untranslated {source_lang} text",
                    items=untranslated,
                )
            )
        if invalid_refs:
            errors.append(
                ValidationIssue(
                    type="invalid_refs",
                    message=f"{len(invalid_refs)} invalid variable references found",
                    items=invalid_refs,
                )
            )
        if over_limit:
            errors.append(
                ValidationIssue(
                    type="over_limit",
                    message=f"{len(over_limit)} fields exceed token limits",
                    items=over_limit,
                )
            )

        return ValidationReport(
            passed=not errors,
            errors=errors,
            warnings=warnings,
            stats={
                "untranslatedCount": len(untranslated),
                "invalidRefsCount": len(invalid_refs),
                "overLimitCount": len(over_limit),
                "totalNodes": len(metadata),
                "variableCount": variable_count,
                "tokenCheck": "skipped" if self.token_counter is None else "ran",
                "totalTokens": total_tokens,
            },
        )

    # ==================== Checks ====================

    @staticmethod
    def _check_leakage(
        metadata: dict[str, dict[str, Any]], source_lang: str
    ) -> list[dict[str, Any]]:
        pattern = SOURCE_SCRIPT_PATTERNS.get(source_lang)
        if pattern is None:
            return []

        def leaks(value: Any) -> bool:
            return isinstance(value, str) and bool(value) and bool(pattern.search(value))

        items: list[dict[str, Any]] = []
        for uid, meta in metadata.items():
            name = _node_name(uid, meta)

            for field_name in LEAKAGE_FIELDS:
                value = meta.get(field_name)
                if leaks(value):
                    items.append(
                        {
                            "uid": _short_uid(uid),
                            "nodeType": meta.get("type"),
                            "nodeName": name,
                            "field": field_name,
                            "preview": _preview(value),
                        }
                    )

            for index, image in enumerate(meta.get("images") or []):
                if isinstance(image, dict) and leaks(image.get("explain")):
                    items.append(
                        {
                            "uid": _short_uid(uid),
                            "nodeType": "image",
                            "nodeName": f"{name}[{index}]",
                            "field": "explain",
                            "preview": _preview(image["explain"]),
                        }
                    )

            for index, entry in enumerate(meta.get("entries") or []):
                if not isinstance(entry, dict):
                    continue
                for field_name in ("key", "text"):
                    if leaks(entry.get(field_name)):
                        items.append(
                            {
                                "uid": _short_uid(uid),
                                "nodeType": "lorebook",
                                "nodeName": f"{name}[{index}]",
                                "field": field_name,
                                "preview": _preview(entry[field_name]),
                            }
                        )

        return items

    @staticmethod
    def _check_references(
        metadata: dict[str, dict[str, Any]],
    ) -> tuple[list[dict[str, Any]], int]:
        valid_refs: set[str] = set()
        valid_inner_lower: set[str] = set()
        for meta in metadata.values():
            variable_name = meta.get("variableName")
            if meta.get("type") == NodeType.VARIABLE.value and isinstance(variable_name, str):
                if not variable_name:
                    continue
                inner = "var_" + re.sub(r"\s+", "_", variable_name)
                valid_refs.add("{{" + inner + "}}")
                valid_inner_lower.add(inner.lower())

        items: list[dict[str, Any]] = []
        for uid, meta in metadata.items():
            name = meta.get("name") or meta.get("title") or _short_uid(uid)
            for field_name in REFERENCE_FIELDS:
                text = meta.get(field_name)
                if not isinstance(text, str) or not text:
                    continue
                for ref in VAR_REFERENCE.findall(text):
                    if ref in valid_refs or ref[2:-2].lower() in valid_inner_lower:
                        continue
                    items.append(
                        {
                            "uid": _short_uid(uid),
                            "nodeType": meta.get("type"),
                            "nodeName": name,
                            "field": field_name,
                            "ref": ref,
                        }
                    )

        return items, len(valid_refs)

    @staticmethod
    def _check_token_limits(
        metadata: dict[str, dict[str, Any]], count_tokens: TokenCounter
    ) -> tuple[list[dict[str, Any]], int]:
        items: list[dict[str, Any]] = []
        total_tokens = 0

        for uid, meta in metadata.items():
            name = meta.get("name") or meta.get("title") or _short_uid(uid)
            limits = TOKEN_LIMITS[NodeType(meta["type"])]
            for field_name, value, limit in limits(meta):
                if not isinstance(value, str):
                    continue
                tokens = count_tokens(value)
                total_tokens += tokens
                if tokens > limit:
                    items.append(
                        {
                            "uid": _short_uid(uid),
                            "nodeType": meta.get("type"),
                            "nodeName": name,
                            "field": field_name,
                            "tokens": tokens,
                            "limit": limit,
                            "over": tokens - limit,
                        }
                    )

        return items, total_tokens
