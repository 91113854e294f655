"""
E-mail delivery through the Mailgun HTTP API.
"""

from __future__ import annotations

import html
from collections.abc import Callable
from datetime import datetime, timezone

import httpx

from translate_canvas_ai.canvas.merger import MergeStats
from translate_canvas_ai.canvas.models import CanvasDocument
from translate_canvas_ai.delivery.base import DeliveryResult, Notifier
from translate_canvas_ai.errors import DeliveryError

MAILGUN_BASE_URL = "https://api.mailgun.net/v3"

# Native names, as shown to the reader of the e-mail
NATIVE_LANGUAGE_NAMES = {
    "ko": "한국어",
    "ja": "日本語",
    "en": "English",
}

_RESULT_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: sans-serif; color: #333;">
  <h2>Canvas Translation Complete</h2>
  <p>Your StoryChat canvas has been translated.</p>
  <table>
    <tr><td>Original Language</td><td><strong>{source}</strong></td></tr>
    <tr><td>Translated To</td><td><strong>{target}</strong></td></tr>
    <tr><td>Nodes Translated</td><td><strong>{applied}</strong></td></tr>
  </table>
  <h3>How to import your translated canvas</h3>
  <ol>
    <li>Download the attached JSON file</li>
    <li>Open the Canvas Editor and click <strong>Import</strong></li>
    <li>Upload the JSON file and click <strong>Compile</strong></li>
  </ol>
  <p>This is an automated message. Please do not reply directly.</p>
</body>
</html>
"""

_FAILURE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: sans-serif; padding: 20px;">
  <h2>Canvas Translation Error</h2>
  <p>We encountered an error while processing translation request {request_id}:</p>
  <p><strong>{error}</strong></p>
  <p>Please try again or contact support if the issue persists.</p>
</body>
</html>
"""


def _native_name(code: str) -> str:
    return NATIVE_LANGUAGE_NAMES.get(code, code)


def attachment_filename(target_lang: str, moment: datetime) -> str:
    """canvas-translated-<lang>-<epoch millis>.json"""
    return f"canvas-translated-{target_lang}-{int(moment.timestamp() * 1000)}.json"


class MailgunNotifier(Notifier):
    """Sends translated canvases as JSON attachments through Mailgun."""

    def __init__(
        self,
        api_key: str | None,
        domain: str,
        *,
        sender: str = "StoryChat <robot@localhost>",
        base_url: str = MAILGUN_BASE_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize Mailgun notifier.

        Args:
            api_key: Mailgun API key.
            domain: Sending domain.
            sender: From header.
            base_url: Mailgun API base URL (EU accounts use a different host).
            timeout: Request timeout in seconds.
            client: Shared HTTP client; a short-lived one is created per send
                when omitted.
            clock: Source of the attachment timestamp.
        """
        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.domain}/messages"

    async def deliver(
        self,
        document: CanvasDocument,
        address: str,
        stats: MergeStats,
    ) -> DeliveryResult:
        if not address or "@" not in address:
            raise DeliveryError("Invalid email address", details={"address": address})

        target = stats.target_lang
        filename = attachment_filename(target, self._clock())
        body = _RESULT_TEMPLATE.format(
            source=html.escape(_native_name(stats.source_lang)),
            target=html.escape(_native_name(target)),
            applied=stats.applied or "N/A",
        )
        data = {
            "from": self.sender,
            "to": address,
            "subject": f"Canvas Translation Complete - {_native_name(target)}",
            "html": body,
            "o:tag": "canvas-translation",
        }
        files = {
            "attachment": (filename, document.to_json().encode("utf-8"), "application/json"),
        }

        payload = await self._post(data, files)
        message_id = payload.get("id") or ""
        return DeliveryResult(
            target="email",
            reference=message_id,
            message=f"Email sent to {address}",
            metadata={"attachment": filename},
        )

    async def notify_failure(self, address: str, request_id: str, error: str) -> None:
        if not address or "@" not in address:
            raise DeliveryError("Invalid email address", details={"address": address})

        data = {
            "from": self.sender,
            "to": address,
            "subject": "Canvas Translation Error",
            "html": _FAILURE_TEMPLATE.format(
                request_id=html.escape(request_id),
                error=html.escape(error),
            ),
            "o:tag": "canvas-translation-error",
        }
        await self._post(data)

    async def _post(
        self,
        data: dict[str, str],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> dict:
        if not self.api_key:
            raise DeliveryError("Mailgun API key not provided (MAILGUN_API_KEY)")

        auth = httpx.BasicAuth("api", self.api_key)
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.messages_url, data=data, files=files, auth=auth
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.messages_url, data=data, files=files, auth=auth
                    )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Mailgun request failed: {e}") from e

        if response.status_code >= 400:
            raise DeliveryError(
                f"Mailgun API error: {response.status_code} - {response.text[:200]}",
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            return {}
