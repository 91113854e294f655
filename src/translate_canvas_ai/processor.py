"""
Request processing: queue -> pipeline -> delivery.

Each pending request is claimed atomically, translated, delivered (account
import first when the request names an account, e-mail otherwise or as the
fallback) and marked completed or failed. A failed request triggers a
failure notice whose own failure is only logged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from translate_canvas_ai.canvas.models import CanvasDocument, validate_language
from translate_canvas_ai.database import Database, Stage, Status, TranslationRequest
from translate_canvas_ai.delivery.account_store import AccountStore
from translate_canvas_ai.delivery.base import AccountImporter, DeliveryResult, Notifier
from translate_canvas_ai.delivery.mailgun import MailgunNotifier
from translate_canvas_ai.errors import CanvasTranslationError, UnsupportedLanguageError
from translate_canvas_ai.llm.factory import create_translation_provider
from translate_canvas_ai.translation.pipeline import (
    CanvasTranslationPipeline,
    PipelineConfig,
    PipelineResult,
    ProgressCallback,
)
from translate_canvas_ai.validation.validator import ValidationReport

if TYPE_CHECKING:
    from translate_canvas_ai.config import Settings


@dataclass
class ProcessOutcome:
    """Result of processing one request."""

    request_id: str
    status: Status
    result_ref: str | None = None
    error: str | None = None
    report: ValidationReport | None = None
    output_path: Path | None = None


class RequestProcessor:
    """Drains the translation request queue."""

    def __init__(
        self,
        db: Database,
        pipeline: CanvasTranslationPipeline,
        notifier: Notifier,
        importer: AccountImporter | None = None,
        *,
        output_dir: Path | None = None,
        job_delay: float = 3.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize request processor.

        Args:
            db: Queue and log database.
            pipeline: Translation pipeline.
            notifier: E-mail delivery and failure notices.
            importer: Account import; requests with an account id use it first.
            output_dir: Also write each translated canvas here when set.
            job_delay: Pause between jobs, in seconds.
            sleep: Awaitable sleep used for the pause.
        """
        self.db = db
        self.pipeline = pipeline
        self.notifier = notifier
        self.importer = importer
        self.output_dir = output_dir
        self.job_delay = job_delay
        self._sleep = sleep

    # ==================== Submission ====================

    def submit(
        self,
        canvas_payload: str,
        target_lang: str,
        email: str,
        account_id: str | None = None,
    ) -> str:
        """
        Queue a translation request.

        The source language is read from the canvas itself.

        Args:
            canvas_payload: Base64-encoded canvas JSON.
            target_lang: Target language code.
            email: Requester address.
            account_id: Account to import the result into.

        Returns:
            The new request id.

        Raises:
            MalformedCanvasError: If the payload is not a valid canvas.
            UnsupportedLanguageError: If the target is unsupported or equals
                the canvas language.
        """
        target_lang = validate_language(target_lang)
        document = CanvasDocument.from_base64(canvas_payload)
        source_lang = document.language
        if source_lang == target_lang:
            raise UnsupportedLanguageError(
                f"Canvas is already in {target_lang}. Please select a different target language.",
                details={"source_lang": source_lang, "target_lang": target_lang},
            )

        request_id = self.db.add_request(
            email=email,
            source_lang=source_lang,
            target_lang=target_lang,
            canvas_payload=canvas_payload,
            account_id=account_id or None,
        )
        self.db.log(
            level="INFO",
            stage=Stage.QUEUE.value,
            message=f"Request queued: {source_lang} -> {target_lang}",
            request_id=request_id,
            context={"nodes": document.node_count, "account_import": bool(account_id)},
        )
        return request_id

    # ==================== Processing ====================

    async def process_pending(
        self,
        limit: int = 10,
        progress_callback: ProgressCallback = None,
    ) -> list[ProcessOutcome]:
        """Process up to ``limit`` pending requests, oldest first."""
        requests = self.db.fetch_pending(limit)
        outcomes: list[ProcessOutcome] = []

        for index, request in enumerate(requests):
            outcome = await self.process_request(request, progress_callback=progress_callback)
            if outcome is not None:
                outcomes.append(outcome)
            if index < len(requests) - 1 and self.job_delay > 0:
                await self._sleep(self.job_delay)

        return outcomes

    async def process_request(
        self,
        request: TranslationRequest,
        progress_callback: ProgressCallback = None,
    ) -> ProcessOutcome | None:
        """
        Process one request.

        Returns:
            The outcome, or None when another worker claimed it first.
        """
        if not self.db.claim_request(request.request_id):
            return None

        request_id = request.request_id
        self.db.log(
            level="INFO",
            stage=Stage.QUEUE.value,
            message=f"Processing request {request_id}",
            request_id=request_id,
            context={"target_lang": request.target_lang},
        )

        try:
            document = CanvasDocument.from_base64(request.canvas_payload)
            result = await self.pipeline.translate(
                document,
                request.target_lang,
                request_id=request_id,
                progress_callback=progress_callback,
            )
            output_path = self._write_output(request, result)
            delivery = await self._deliver(request, result)
        except Exception as e:
            return await self._fail(request, e)

        self.db.mark_status(request_id, Status.COMPLETED, result_ref=delivery.reference)
        self.db.log(
            level="INFO",
            stage=Stage.DELIVERY.value,
            message=f"Request completed via {delivery.target}",
            request_id=request_id,
            context={
                "reference": delivery.reference,
                "validation_passed": result.report.passed,
                **result.stats.to_dict(),
            },
        )
        return ProcessOutcome(
            request_id=request_id,
            status=Status.COMPLETED,
            result_ref=delivery.reference,
            report=result.report,
            output_path=output_path,
        )

    def _write_output(self, request: TranslationRequest, result: PipelineResult) -> Path | None:
        if self.output_dir is None:
            return None
        path = Path(self.output_dir) / f"{request.request_id}-{request.target_lang}.json"
        return result.document.write(path)

    async def _deliver(
        self,
        request: TranslationRequest,
        result: PipelineResult,
    ) -> DeliveryResult:
        if self.importer is not None and request.account_id:
            try:
                return await self.importer.import_document(result.document, request.account_id)
            except Exception as e:
                self.db.log(
                    level="WARNING",
                    stage=Stage.DELIVERY.value,
                    message=f"Account import failed, falling back to email: {_error_message(e)}",
                    request_id=request.request_id,
                    context=_error_context(e),
                )

        return await self.notifier.deliver(result.document, request.email, result.stats)

    async def _fail(self, request: TranslationRequest, error: Exception) -> ProcessOutcome:
        request_id = request.request_id
        message = _error_message(error)
        context = _error_context(error)

        self.db.mark_status(request_id, Status.FAILED, error=message)
        self.db.log(
            level="ERROR",
            stage=Stage.QUEUE.value,
            message=f"Request failed: {message}",
            request_id=request_id,
            context=context,
        )

        try:
            await self.notifier.notify_failure(request.email, request_id, message)
        except Exception as notify_error:
            self.db.log(
                level="ERROR",
                stage=Stage.DELIVERY.value,
                message=f"Failure notification could not be sent: {notify_error}",
                request_id=request_id,
            )

        return ProcessOutcome(request_id=request_id, status=Status.FAILED, error=message)


def _error_message(error: Exception) -> str:
    return error.message if isinstance(error, CanvasTranslationError) else str(error)


def _error_context(error: Exception) -> dict[str, Any]:
    if isinstance(error, CanvasTranslationError):
        return error.to_dict()
    return {"error_type": type(error).__name__, "message": str(error)}


def build_processor(settings: Settings, db: Database) -> RequestProcessor:
    """Wire a RequestProcessor from configuration."""

    def log_fallback(level: str, message: str, context: dict[str, Any]) -> None:
        db.log(level=level, stage=Stage.TRANSLATE.value, message=message, context=context)

    provider = create_translation_provider(settings.translation, log_callback=log_fallback)
    pipeline = CanvasTranslationPipeline(provider, PipelineConfig.from_settings(settings), db=db)

    delivery = settings.delivery
    notifier = MailgunNotifier(
        delivery.mailgun_api_key,
        delivery.mailgun_domain,
        sender=delivery.sender,
        base_url=delivery.mailgun_base_url,
    )
    importer = AccountStore(db) if delivery.account_import else None

    return RequestProcessor(
        db,
        pipeline,
        notifier,
        importer,
        output_dir=settings.paths.output_dir,
        job_delay=settings.queue.job_delay,
    )
