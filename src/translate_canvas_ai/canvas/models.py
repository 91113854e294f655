"""
Canvas document model.

A canvas export is a JSON object holding canvas settings, a node list, the
connections between nodes and a metadata set keyed by node UID. Each metadata
entry is one variant of a tagged union keyed by ``type``; the variants only
declare the fields the translation pipeline reads; everything else is kept
verbatim in the raw document.
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from translate_canvas_ai.errors import MalformedCanvasError, UnsupportedLanguageError

SUPPORTED_LANGUAGES = ("ko", "ja", "en")

# Canvases exported before canvasLanguage existed are Korean.
DEFAULT_CANVAS_LANGUAGE = "ko"

LANGUAGE_NAMES = {
    "ko": "Korean",
    "ja": "Japanese",
    "en": "English",
}


class NodeType(str, Enum):
    """Node metadata variants."""

    STORY = "story"
    CHARACTER = "character"
    TEXT = "text"
    UPDATE_RULE = "updateRule"
    VARIABLE = "variable"
    USER = "user"
    LOREBOOK = "lorebook"
    ACHIEVEMENT = "achievement"
    STATUS_VIEW = "statusView"
    IMAGE = "image"
    TRIGGER = "trigger"


def validate_language(code: str | None) -> str:
    """Normalize and check a language code against the supported set."""
    normalized = (code or "").strip().lower()
    if normalized not in SUPPORTED_LANGUAGES:
        raise UnsupportedLanguageError(
            f"Unsupported language: {code!r}. Valid options: {list(SUPPORTED_LANGUAGES)}"
        )
    return normalized


class _CanvasModel(BaseModel):
    """Base config: camelCase aliases, unknown fields preserved."""

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class AdvancedSettings(_CanvasModel):
    """Story advanced settings that free up core context room."""

    disable_dynamic_memory: bool = False
    disable_auto_plot_compression: bool = False
    disable_macro_prompt_injections: bool = False
    disable_default_content_policy: bool = False
    disable_default_system_instructions: bool = False
    disable_narration_cue: bool = False
    disable_dialogue_cue: bool = False


class LorebookEntry(_CanvasModel):
    """One lorebook entry."""

    key: str | None = None
    text: str | None = None
    patterns: list[Any] = Field(default_factory=list)


class ImageItem(_CanvasModel):
    """One image attached to an image node."""

    explain: str | None = None


class _NodeBase(_CanvasModel):
    name: str | None = None
    title: str | None = None


class StoryNode(_NodeBase):
    type: Literal["story"] = "story"
    core_context: str | None = None
    prologue: str | None = None
    prologue_guide: str | None = None
    text: str | None = None
    advanced_settings: AdvancedSettings | None = None


class CharacterNode(_NodeBase):
    type: Literal["character"] = "character"
    text: str | None = None


class TextNode(_NodeBase):
    type: Literal["text"] = "text"
    text: str | None = None


class UpdateRuleNode(_NodeBase):
    type: Literal["updateRule"] = "updateRule"
    text: str | None = None


class VariableNode(_NodeBase):
    type: Literal["variable"] = "variable"
    variable_name: str | None = None
    initial_value: Any = None


class UserNode(_NodeBase):
    type: Literal["user"] = "user"
    text: str | None = None


class LorebookNode(_NodeBase):
    type: Literal["lorebook"] = "lorebook"
    entries: list[LorebookEntry] | None = None


class AchievementNode(_NodeBase):
    type: Literal["achievement"] = "achievement"
    achievement_name: str | None = None
    description: str | None = None


class StatusViewNode(_NodeBase):
    type: Literal["statusView"] = "statusView"
    status_title: str | None = None
    html_content: str | None = None


class ImageNode(_NodeBase):
    type: Literal["image"] = "image"
    images: list[ImageItem] | None = None


class TriggerNode(_NodeBase):
    type: Literal["trigger"] = "trigger"


NodeMetadata = Annotated[
    Union[
        StoryNode,
        CharacterNode,
        TextNode,
        UpdateRuleNode,
        VariableNode,
        UserNode,
        LorebookNode,
        AchievementNode,
        StatusViewNode,
        ImageNode,
        TriggerNode,
    ],
    Field(discriminator="type"),
]

_NODE_ADAPTER: TypeAdapter[Any] = TypeAdapter(NodeMetadata)


def node_type_of(node: Any) -> NodeType:
    """Return the NodeType of a typed metadata view."""
    return NodeType(node.type)


class CanvasSettings(_CanvasModel):
    canvas_language: str | None = None


class NodeRef(_CanvasModel):
    uid: str
    type: str | None = None
    deleted: bool = False


class _CanvasEnvelope(_CanvasModel):
    """Schema check for the whole export; never used to re-serialize."""

    canvas: CanvasSettings
    nodes: list[NodeRef] = Field(default_factory=list)
    connections: list[Any] = Field(default_factory=list)
    metadata_set: dict[str, NodeMetadata]


class CanvasDocument:
    """
    A parsed canvas export.

    Wraps the raw JSON object so untouched fields survive a round trip
    unchanged. Typed node views are produced on demand from the raw metadata,
    so they always reflect the current state of the document.
    """

    def __init__(self, data: dict[str, Any], *, validate: bool = True):
        """
        Initialize from a decoded canvas export.

        Args:
            data: Decoded canvas-export JSON object.
            validate: Check the envelope, every node variant and the language.

        Raises:
            MalformedCanvasError: If the document fails the schema checks.
        """
        if validate:
            _validate_document(data)
        self._data = data

    # ==================== Construction ====================

    @classmethod
    def from_json(cls, payload: str | bytes) -> CanvasDocument:
        """Parse canvas-export JSON text."""
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedCanvasError(f"Canvas is not valid JSON: {e}") from e
        return cls(data)

    @classmethod
    def from_base64(cls, payload: str) -> CanvasDocument:
        """Parse a base64-encoded canvas export (queue payload format)."""
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedCanvasError(f"Canvas payload is not valid base64: {e}") from e
        return cls.from_json(raw)

    @classmethod
    def from_file(cls, path: Path | str) -> CanvasDocument:
        """Load a canvas export from disk."""
        return cls.from_json(Path(path).read_bytes())

    def clone(self) -> CanvasDocument:
        """Deep copy of the document; the copy shares nothing with self."""
        return CanvasDocument(copy.deepcopy(self._data), validate=False)

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        """Return the raw document object (not a copy)."""
        return self._data

    def to_json(self, indent: int | None = 2) -> str:
        """Serialize to JSON, keeping non-ASCII text readable."""
        return json.dumps(self._data, ensure_ascii=False, indent=indent)

    def to_base64(self) -> str:
        """Serialize to the base64 queue payload format."""
        return base64.b64encode(self.to_json(indent=None).encode("utf-8")).decode("ascii")

    def write(self, path: Path | str) -> Path:
        """Write the document as pretty JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path

    # ==================== Accessors ====================

    @property
    def canvas(self) -> dict[str, Any]:
        return self._data["canvas"]

    @property
    def language(self) -> str:
        """Canvas language code (defaults to Korean for old exports)."""
        return self.canvas.get("canvasLanguage") or DEFAULT_CANVAS_LANGUAGE

    @property
    def nodes(self) -> list[dict[str, Any]]:
        return self._data.setdefault("nodes", [])

    @property
    def connections(self) -> list[Any]:
        return self._data.setdefault("connections", [])

    @property
    def metadata_set(self) -> dict[str, dict[str, Any]]:
        """Raw metadata entries keyed by UID."""
        return self._data["metadataSet"]

    @property
    def node_count(self) -> int:
        return len(self.metadata_set)

    def raw_metadata(self, uid: str) -> dict[str, Any]:
        """Raw (mutable) metadata entry for a node."""
        return self.metadata_set[uid]

    def metadata(self, uid: str) -> Any:
        """Typed metadata view for a node."""
        return _NODE_ADAPTER.validate_python(self.metadata_set[uid])

    def iter_metadata(self) -> Iterator[tuple[str, Any]]:
        """Yield (uid, typed view) pairs in document order."""
        for uid, raw in self.metadata_set.items():
            yield uid, _NODE_ADAPTER.validate_python(raw)


def _validate_document(data: Any) -> None:
    """Run the envelope schema and invariant checks on a decoded export."""
    if not isinstance(data, dict):
        raise MalformedCanvasError("Canvas export must be a JSON object")

    try:
        envelope = _CanvasEnvelope.model_validate(data)
    except ValidationError as e:
        errors = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()[:10]
        ]
        raise MalformedCanvasError(
            f"Canvas export failed schema validation ({e.error_count()} errors)",
            details={"errors": errors},
        ) from e

    language = envelope.canvas.canvas_language
    if language is not None and language not in SUPPORTED_LANGUAGES:
        raise MalformedCanvasError(
            f"Unsupported canvasLanguage: {language!r}",
            details={"supported": list(SUPPORTED_LANGUAGES)},
        )

    missing = [
        ref.uid
        for ref in envelope.nodes
        if not ref.deleted and ref.uid not in envelope.metadata_set
    ]
    if missing:
        raise MalformedCanvasError(
            f"{len(missing)} nodes have no metadata entry",
            details={"uids": missing[:20]},
        )
