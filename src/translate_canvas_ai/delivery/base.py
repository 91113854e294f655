"""
Delivery target interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from translate_canvas_ai.canvas.merger import MergeStats
from translate_canvas_ai.canvas.models import CanvasDocument


@dataclass
class DeliveryResult:
    """Outcome of a successful delivery."""

    target: str
    reference: str
    message: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class AccountImporter(ABC):
    """Imports a translated canvas straight into a user account."""

    @abstractmethod
    async def import_document(
        self,
        document: CanvasDocument,
        account_id: str,
        title: str | None = None,
    ) -> DeliveryResult:
        """
        Import a translated canvas.

        Args:
            document: Translated canvas.
            account_id: Owner account id.
            title: Canvas title; defaults to one naming the language.

        Returns:
            DeliveryResult whose reference is the new canvas id.

        Raises:
            DeliveryError: If the account id is malformed or unknown.
        """
        ...


class Notifier(ABC):
    """Sends results and failure notices to the requester."""

    @abstractmethod
    async def deliver(
        self,
        document: CanvasDocument,
        address: str,
        stats: MergeStats,
    ) -> DeliveryResult:
        """
        Send the translated canvas to an address.

        Returns:
            DeliveryResult whose reference is the message id.

        Raises:
            DeliveryError: If the message could not be sent.
        """
        ...

    @abstractmethod
    async def notify_failure(self, address: str, request_id: str, error: str) -> None:
        """
        Tell the requester their translation failed.

        Raises:
            DeliveryError: If the notice could not be sent.
        """
        ...
