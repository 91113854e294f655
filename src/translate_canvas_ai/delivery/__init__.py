"""Delivery targets for translated canvases."""

from translate_canvas_ai.delivery.account_store import AccountStore
from translate_canvas_ai.delivery.base import AccountImporter, DeliveryResult, Notifier
from translate_canvas_ai.delivery.mailgun import MailgunNotifier

__all__ = [
    "AccountImporter",
    "AccountStore",
    "DeliveryResult",
    "MailgunNotifier",
    "Notifier",
]
