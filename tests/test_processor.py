"""Tests for the request queue processor."""

import base64
import json

import duckdb
import pytest

from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.database import Status
from translate_canvas_ai.delivery import AccountImporter, AccountStore, DeliveryResult, Notifier
from translate_canvas_ai.errors import DeliveryError, MalformedCanvasError, UnsupportedLanguageError
from translate_canvas_ai.processor import RequestProcessor
from translate_canvas_ai.translation import CanvasTranslationPipeline, PipelineConfig

from conftest import FakeLLMProvider

ACCOUNT_ID = "0123456789abcdef01234567"


class RecordingNotifier(Notifier):
    def __init__(self, fail_delivery=False, fail_notice=False):
        self.fail_delivery = fail_delivery
        self.fail_notice = fail_notice
        self.delivered = []
        self.failures = []

    async def deliver(self, document, address, stats):
        if self.fail_delivery:
            raise DeliveryError("Mailgun API error: 500")
        self.delivered.append((address, document, stats))
        return DeliveryResult(target="email", reference=f"<msg-{len(self.delivered)}@mailgun>")

    async def notify_failure(self, address, request_id, error):
        if self.fail_notice:
            raise DeliveryError("Mailgun API error: 401")
        self.failures.append((address, request_id, error))


@pytest.fixture
def payload(canvas_data):
    return base64.b64encode(json.dumps(canvas_data, ensure_ascii=False).encode("utf-8")).decode()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sleeps():
    return []


def _processor(db, notifier, sleeps, provider=None, merger=None, validator=None, **kwargs):
    pipeline = CanvasTranslationPipeline(
        provider or FakeLLMProvider(),
        PipelineConfig(chunk_delay=0),
        db=db,
        merger=merger,
        validator=validator,
    )

    async def sleep(seconds):
        sleeps.append(seconds)

    kwargs.setdefault("importer", AccountStore(db))
    return RequestProcessor(db, pipeline, notifier, sleep=sleep, **kwargs)


@pytest.fixture
def processor(db, notifier, sleeps, merger, validator):
    return _processor(db, notifier, sleeps, merger=merger, validator=validator)


class TestSubmit:
    def test_queues_request(self, processor, db, payload):
        request_id = processor.submit(payload, "en", "writer@example.com")

        request = db.get_request(request_id)
        assert request.status == Status.PENDING
        assert request.source_lang == "ko"
        assert request.target_lang == "en"
        assert request.account_id is None
        assert request_id.startswith("TR-")

    def test_source_language_comes_from_canvas(self, processor, db, canvas_data):
        canvas_data["canvas"]["canvasLanguage"] = "ja"
        payload = CanvasDocument(canvas_data).to_base64()

        request_id = processor.submit(payload, "EN", "writer@example.com")
        assert db.get_request(request_id).source_lang == "ja"

    def test_same_language_rejected(self, processor, db, payload):
        with pytest.raises(UnsupportedLanguageError):
            processor.submit(payload, "ko", "writer@example.com")
        assert db.get_requests() == []

    def test_malformed_payload_rejected(self, processor):
        with pytest.raises(MalformedCanvasError):
            processor.submit(base64.b64encode(b"{}").decode(), "en", "writer@example.com")


class TestProcessing:
    async def test_email_delivery(self, processor, db, notifier, payload, tmp_path):
        processor.output_dir = tmp_path
        request_id = processor.submit(payload, "en", "writer@example.com")

        outcomes = await processor.process_pending()

        assert len(outcomes) == 1
        outcome = outcomes[0]
        assert outcome.status == Status.COMPLETED
        assert outcome.result_ref == "<msg-1@mailgun>"
        assert outcome.report.passed
        assert outcome.output_path == tmp_path / f"{request_id}-en.json"
        assert CanvasDocument.from_file(outcome.output_path).language == "en"

        address, document, stats = notifier.delivered[0]
        assert address == "writer@example.com"
        assert document.raw_metadata("char-1")["name"] == "Haru"
        assert stats.applied == 12

        request = db.get_request(request_id)
        assert request.status == Status.COMPLETED
        assert request.result_ref == "<msg-1@mailgun>"
        assert request.processed_at is not None

    async def test_account_import(self, processor, db, notifier, payload):
        db.add_account("writer@example.com", account_id=ACCOUNT_ID)
        request_id = processor.submit(payload, "en", "writer@example.com", account_id=ACCOUNT_ID)

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.COMPLETED
        assert notifier.delivered == []
        canvas = db.get_canvas(outcome.result_ref)
        assert canvas["creator_id"] == ACCOUNT_ID
        assert canvas["canvas_language"] == "en"
        assert db.get_request(request_id).result_ref == outcome.result_ref

    async def test_failed_import_falls_back_to_email(self, processor, db, notifier, payload):
        request_id = processor.submit(payload, "en", "writer@example.com", account_id="not-an-id")

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.COMPLETED
        assert len(notifier.delivered) == 1
        warnings = db.get_logs(request_id=request_id, stage="delivery", level="WARNING")
        assert "falling back to email" in warnings[0]["message"]

    async def test_unexpected_import_error_falls_back_to_email(
        self, db, notifier, sleeps, payload, merger, validator
    ):
        class BrokenImporter(AccountImporter):
            async def import_document(self, document, account_id, title=None):
                raise RuntimeError("storage offline")

        processor = _processor(
            db, notifier, sleeps, merger=merger, validator=validator, importer=BrokenImporter()
        )
        request_id = processor.submit(payload, "en", "writer@example.com", account_id=ACCOUNT_ID)

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.COMPLETED
        assert len(notifier.delivered) == 1
        [warning] = db.get_logs(request_id=request_id, stage="delivery", level="WARNING")
        assert warning["message"].endswith("storage offline")
        assert warning["context"]["error_type"] == "RuntimeError"

    async def test_import_storage_error_falls_back_to_email(
        self, processor, db, notifier, payload, monkeypatch
    ):
        def broken_insert(**kwargs):
            raise duckdb.IOException("disk I/O error")

        monkeypatch.setattr(db, "insert_canvas", broken_insert)
        db.add_account("writer@example.com", account_id=ACCOUNT_ID)
        request_id = processor.submit(payload, "en", "writer@example.com", account_id=ACCOUNT_ID)

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.COMPLETED
        assert outcome.result_ref == "<msg-1@mailgun>"
        assert len(notifier.delivered) == 1
        assert db.get_request(request_id).status == Status.COMPLETED

    async def test_failure_marks_request_and_notifies(self, db, notifier, sleeps, payload):
        processor = _processor(
            db, notifier, sleeps, provider=FakeLLMProvider(error=RuntimeError("upstream 503"))
        )
        request_id = processor.submit(payload, "en", "writer@example.com")

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.FAILED
        assert "upstream 503" in outcome.error
        request = db.get_request(request_id)
        assert request.status == Status.FAILED
        assert "upstream 503" in request.error
        assert notifier.failures == [("writer@example.com", request_id, outcome.error)]
        assert db.get_logs(request_id=request_id, level="ERROR")

    async def test_delivery_failure_fails_request(self, db, sleeps, payload, merger, validator):
        notifier = RecordingNotifier(fail_delivery=True)
        processor = _processor(db, notifier, sleeps, merger=merger, validator=validator)
        request_id = processor.submit(payload, "en", "writer@example.com")

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.FAILED
        assert db.get_request(request_id).error == "Mailgun API error: 500"
        assert len(notifier.failures) == 1

    async def test_notification_failure_is_only_logged(self, db, sleeps, payload):
        notifier = RecordingNotifier(fail_notice=True)
        processor = _processor(db, notifier, sleeps, provider=FakeLLMProvider(error=RuntimeError("boom")))
        request_id = processor.submit(payload, "en", "writer@example.com")

        [outcome] = await processor.process_pending()

        assert outcome.status == Status.FAILED
        errors = db.get_logs(request_id=request_id, stage="delivery", level="ERROR")
        assert "could not be sent" in errors[0]["message"]

    async def test_corrupt_payload_fails_request(self, processor, db, notifier):
        request_id = db.add_request(
            email="writer@example.com",
            source_lang="ko",
            target_lang="en",
            canvas_payload="%%%",
        )

        [outcome] = await processor.process_pending()

        assert outcome.request_id == request_id
        assert outcome.status == Status.FAILED
        assert "base64" in outcome.error

    async def test_claimed_request_is_skipped(self, processor, db, payload):
        request_id = processor.submit(payload, "en", "writer@example.com")
        request = db.get_request(request_id)
        assert db.claim_request(request_id)

        assert await processor.process_request(request) is None

    async def test_job_delay_between_requests(self, processor, sleeps, payload):
        processor.job_delay = 3.0
        for _ in range(3):
            processor.submit(payload, "en", "writer@example.com")

        outcomes = await processor.process_pending()

        assert [outcome.status for outcome in outcomes] == [Status.COMPLETED] * 3
        assert sleeps == [3.0, 3.0]

    async def test_limit(self, processor, db, payload):
        for _ in range(3):
            processor.submit(payload, "en", "writer@example.com")

        outcomes = await processor.process_pending(limit=2)

        assert len(outcomes) == 2
        assert len(db.get_requests(Status.PENDING)) == 1

    async def test_no_pending_requests(self, processor, sleeps):
        assert await processor.process_pending() == []
        assert sleeps == []
