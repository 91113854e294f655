"""
LangGraph-based canvas translation pipeline.

One document flows through five strictly sequential stages:

    extract -> glossary -> translate -> merge -> validate

Fatal errors raised by a stage propagate out of ``translate``; validation
findings never fail the pipeline, they are returned in the report.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypedDict

from langgraph.graph import END, StateGraph

from translate_canvas_ai.canvas.merger import CanvasMerger, MergeStats
from translate_canvas_ai.canvas.models import LANGUAGE_NAMES, CanvasDocument, validate_language
from translate_canvas_ai.database import Database, Stage
from translate_canvas_ai.errors import UnsupportedLanguageError
from translate_canvas_ai.extraction.extractor import CanvasExtractor
from translate_canvas_ai.extraction.glossary import BatchItem, BatchName, ExtractionResult
from translate_canvas_ai.llm.base import LLMProvider
from translate_canvas_ai.translation.batch_translator import BatchTranslator
from translate_canvas_ai.translation.glossary_translator import GlossaryTranslator
from translate_canvas_ai.validation.validator import CanvasValidator, ValidationReport

if TYPE_CHECKING:
    from translate_canvas_ai.config import Settings


class PipelineStage(str, Enum):
    """Pipeline processing stages."""

    INIT = "init"
    EXTRACT = "extract"
    GLOSSARY = "glossary"
    TRANSLATE = "translate"
    MERGE = "merge"
    VALIDATE = "validate"
    COMPLETE = "complete"


class PipelineState(TypedDict, total=False):
    """State for the translation pipeline."""

    request_id: str | None
    source_lang: str
    target_lang: str
    current_stage: PipelineStage

    document: CanvasDocument
    extraction: ExtractionResult
    translated_batches: dict[BatchName, list[BatchItem]]
    translated: CanvasDocument
    merge_stats: MergeStats
    report: ValidationReport


@dataclass
class ProgressInfo:
    """Progress information for callbacks."""

    stage: str  # extract, glossary, translate, merge, validate
    stage_display: str  # Human-readable stage description
    current: int | None = None
    total: int | None = None
    detail: str | None = None  # e.g. batch name or "12 nodes extracted"


ProgressCallback = Callable[[ProgressInfo], None] | None


@dataclass
class PipelineConfig:
    """Configuration for the translation pipeline."""

    chunk_size: int = 10
    chunk_delay: float = 0.5
    tolerate_chunk_failures: bool = False
    temperature: float = 0.3
    glossary_max_tokens: int = 4000
    batch_max_tokens: int = 16000
    tokenizer_encoding: str = "o200k_base"

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        t = settings.translation
        return cls(
            chunk_size=t.chunk_size,
            chunk_delay=t.chunk_delay,
            tolerate_chunk_failures=t.tolerate_chunk_failures,
            temperature=t.temperature,
            glossary_max_tokens=t.glossary_max_tokens,
            batch_max_tokens=t.batch_max_tokens,
            tokenizer_encoding=settings.validation.tokenizer_encoding,
        )


@dataclass
class PipelineResult:
    """Everything one pipeline run produced."""

    document: CanvasDocument
    stats: MergeStats
    report: ValidationReport
    extraction: ExtractionResult


class CanvasTranslationPipeline:
    """
    LangGraph-based pipeline for canvas translation.

    Components default to their standard implementations and can be replaced
    (tests inject a fixed-clock merger and a fake token counter).
    """

    def __init__(
        self,
        provider: LLMProvider,
        config: PipelineConfig | None = None,
        *,
        db: Database | None = None,
        extractor: CanvasExtractor | None = None,
        merger: CanvasMerger | None = None,
        validator: CanvasValidator | None = None,
    ):
        """
        Initialize translation pipeline.

        Args:
            provider: Translation backend.
            config: Pipeline configuration.
            db: Database for the processing log; nothing is logged without one.
            extractor: Content extractor.
            merger: Canvas merger.
            validator: Translated canvas validator.
        """
        self.provider = provider
        self.config = config or PipelineConfig()
        self.db = db

        self.extractor = extractor or CanvasExtractor()
        self.merger = merger or CanvasMerger()
        self.validator = validator or CanvasValidator(encoding=self.config.tokenizer_encoding)

        self.glossary_translator = GlossaryTranslator(
            provider,
            temperature=self.config.temperature,
            max_tokens=self.config.glossary_max_tokens,
            log_callback=self._stage_logger(Stage.GLOSSARY),
        )
        self.batch_translator = BatchTranslator(
            provider,
            chunk_size=self.config.chunk_size,
            chunk_delay=self.config.chunk_delay,
            tolerate_chunk_failures=self.config.tolerate_chunk_failures,
            temperature=self.config.temperature,
            max_tokens=self.config.batch_max_tokens,
            log_callback=self._stage_logger(Stage.TRANSLATE),
        )

        self._request_id: str | None = None
        self._progress_callback: ProgressCallback = None
        self._app = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(PipelineState)

        workflow.add_node("extract", self._node_extract)
        workflow.add_node("glossary", self._node_glossary)
        workflow.add_node("translate", self._node_translate)
        workflow.add_node("merge", self._node_merge)
        workflow.add_node("validate", self._node_validate)

        workflow.set_entry_point("extract")
        workflow.add_edge("extract", "glossary")
        workflow.add_edge("glossary", "translate")
        workflow.add_edge("translate", "merge")
        workflow.add_edge("merge", "validate")
        workflow.add_edge("validate", END)

        return workflow

    # ==================== Logging & Progress ====================

    def _log(
        self,
        level: str,
        stage: Stage,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        if self.db is not None:
            self.db.log(
                level=level,
                stage=stage.value,
                message=message,
                request_id=self._request_id,
                context=context,
            )

    def _stage_logger(self, stage: Stage) -> Callable[[str, str, dict[str, Any]], None]:
        def log_callback(level: str, message: str, context: dict[str, Any]) -> None:
            self._log(level, stage, message, context)

        return log_callback

    def _report_progress(
        self,
        stage: PipelineStage,
        stage_display: str,
        current: int | None = None,
        total: int | None = None,
        detail: str | None = None,
    ) -> None:
        if self._progress_callback:
            self._progress_callback(
                ProgressInfo(
                    stage=stage.value,
                    stage_display=stage_display,
                    current=current,
                    total=total,
                    detail=detail,
                )
            )

    # ==================== Nodes ====================

    async def _node_extract(self, state: PipelineState) -> dict[str, Any]:
        self._report_progress(PipelineStage.EXTRACT, "Extracting translatable content")
        extraction = self.extractor.extract(state["document"])

        summary = extraction.batch_summary()
        self._log(
            "INFO",
            Stage.EXTRACT,
            f"Extracted {extraction.total_items} nodes into {sum(1 for n in summary.values() if n)} batches",
            {
                "batches": summary,
                "glossary_entries": len(extraction.glossary),
                "language_instructions": len(extraction.glossary.language_instructions),
            },
        )
        self._report_progress(
            PipelineStage.EXTRACT,
            "Extracting translatable content",
            detail=f"{extraction.total_items} nodes extracted",
        )
        return {"extraction": extraction, "current_stage": PipelineStage.GLOSSARY}

    async def _node_glossary(self, state: PipelineState) -> dict[str, Any]:
        extraction = state["extraction"]
        self._report_progress(PipelineStage.GLOSSARY, "Translating glossary", 0, 1)
        await self.glossary_translator.translate_glossary(
            extraction.glossary, state["target_lang"], extraction.context
        )
        self._report_progress(PipelineStage.GLOSSARY, "Translating glossary", 1, 1)
        return {"current_stage": PipelineStage.TRANSLATE}

    async def _node_translate(self, state: PipelineState) -> dict[str, Any]:
        extraction = state["extraction"]

        def on_chunk(batch_name: str, done: int, total: int) -> None:
            self._report_progress(
                PipelineStage.TRANSLATE,
                "Translating batches",
                current=done,
                total=total,
                detail=batch_name,
            )

        translated = await self.batch_translator.translate_batches(
            extraction.batches,
            state["target_lang"],
            extraction.context,
            extraction.glossary,
            progress_callback=on_chunk,
        )

        received = sum(len(items) for items in translated.values())
        self._log(
            "INFO",
            Stage.TRANSLATE,
            f"Translated {received}/{extraction.total_items} nodes",
            {"failed_chunks": self.batch_translator.failed_chunks},
        )
        return {"translated_batches": translated, "current_stage": PipelineStage.MERGE}

    async def _node_merge(self, state: PipelineState) -> dict[str, Any]:
        self._report_progress(PipelineStage.MERGE, "Merging translations")
        document, stats = self.merger.merge(
            state["document"],
            state["translated_batches"],
            state["extraction"],
            state["target_lang"],
        )
        self._log(
            "INFO",
            Stage.MERGE,
            f"Merged translations: {stats.applied} applied, {stats.skipped} skipped",
            stats.to_dict(),
        )
        return {"translated": document, "merge_stats": stats, "current_stage": PipelineStage.VALIDATE}

    async def _node_validate(self, state: PipelineState) -> dict[str, Any]:
        self._report_progress(PipelineStage.VALIDATE, "Validating translation")
        report = self.validator.validate(state["translated"], state["source_lang"])

        level = "INFO" if report.passed else "WARNING"
        status = "passed" if report.passed else "found issues"
        self._log(level, Stage.VALIDATE, f"Validation {status}", report.to_dict())
        return {"report": report, "current_stage": PipelineStage.COMPLETE}

    # ==================== Entry Point ====================

    async def translate(
        self,
        document: CanvasDocument,
        target_lang: str,
        *,
        request_id: str | None = None,
        progress_callback: ProgressCallback = None,
    ) -> PipelineResult:
        """
        Translate a canvas document.

        Args:
            document: Source canvas (left unchanged).
            target_lang: Target language code.
            request_id: Queue request id used to tag log entries.
            progress_callback: Optional callback for progress updates.

        Returns:
            PipelineResult with the translated document, merge stats and
            validation report.

        Raises:
            UnsupportedLanguageError: If target_lang is unsupported or equals
                the document's language.
            TranslationError: If the glossary or a batch could not be
                translated.
        """
        target_lang = validate_language(target_lang)
        source_lang = document.language
        if source_lang == target_lang:
            raise UnsupportedLanguageError(
                f"Canvas is already in {LANGUAGE_NAMES[target_lang]}. "
                "Please select a different target language.",
                details={"source_lang": source_lang, "target_lang": target_lang},
            )

        self._request_id = request_id
        self._progress_callback = progress_callback
        self.batch_translator.failed_chunks = 0

        self._log(
            "INFO",
            Stage.EXTRACT,
            f"Starting translation {source_lang} -> {target_lang}",
            {"nodes": document.node_count, "model": self.provider.model},
        )

        initial_state: PipelineState = {
            "request_id": request_id,
            "source_lang": source_lang,
            "target_lang": target_lang,
            "current_stage": PipelineStage.INIT,
            "document": document,
        }
        final_state = await self._app.ainvoke(initial_state)

        return PipelineResult(
            document=final_state["translated"],
            stats=final_state["merge_stats"],
            report=final_state["report"],
            extraction=final_state["extraction"],
        )
