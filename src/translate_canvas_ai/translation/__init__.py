"""
Translation stages: glossary, batches and the pipeline that runs them.
"""

from translate_canvas_ai.translation.batch_translator import BatchTranslator
from translate_canvas_ai.translation.glossary_translator import GlossaryTranslator
from translate_canvas_ai.translation.pipeline import (
    CanvasTranslationPipeline,
    PipelineConfig,
    PipelineResult,
    ProgressInfo,
)

__all__ = [
    "BatchTranslator",
    "CanvasTranslationPipeline",
    "GlossaryTranslator",
    "PipelineConfig",
    "PipelineResult",
    "ProgressInfo",
]
