"""Downstream collaborators invoked after a decision is committed.

Both are narrow interfaces. The HTTP implementations talk to an external
document service and a notification webhook; when those are not configured
(local development) the logging implementations stand in.
"""

import logging
from typing import Any, Protocol
from uuid import UUID, uuid4

import httpx

from ..core.config import get_settings
from ..core.errors import DocumentGenerationError, NotificationError

logger = logging.getLogger(__name__)
settings = get_settings()


class DocumentGenerator(Protocol):
    async def generate(self, application_id: UUID) -> str:
        """Produce the outcome document and return its id. May fail transiently."""
        ...


class Notifier(Protocol):
    async def notify(self, target_id: Any, event_type: str, payload: dict[str, Any]) -> None:
        """Deliver an event to a requester or reviewer. Fire and forget."""
        ...


# =============================================================================
# HTTP IMPLEMENTATIONS
# =============================================================================


class HttpDocumentGenerator:
    """Requests document generation from an external service."""

    def __init__(self, base_url: str, timeout: float | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds

    async def generate(self, application_id: UUID) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/documents",
                    json={"application_id": str(application_id)},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise DocumentGenerationError(f"Document service request failed: {e}") from e
        except ValueError as e:
            raise DocumentGenerationError(f"Document service returned invalid JSON: {e}") from e

        document_id = data.get("document_id") if isinstance(data, dict) else None
        if not document_id:
            raise DocumentGenerationError("Document service response has no document_id")
        return str(document_id)


class WebhookNotifier:
    """Posts workflow events to a notification webhook (email/SMS fan-out lives there)."""

    def __init__(self, webhook_url: str, timeout: float | None = None):
        self.webhook_url = webhook_url
        self.timeout = timeout or settings.http_timeout_seconds

    async def notify(self, target_id: Any, event_type: str, payload: dict[str, Any]) -> None:
        body = {
            "target_id": str(target_id),
            "event_type": event_type,
            "payload": payload,
            "source": "review-gateway",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=body)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"Notification webhook failed for {event_type}: {e}") from e


# =============================================================================
# LOCAL IMPLEMENTATIONS
# =============================================================================


class LoggingDocumentGenerator:
    async def generate(self, application_id: UUID) -> str:
        document_id = f"doc-{uuid4().hex}"
        logger.info(f"Document service not configured; issued {document_id} for {application_id}")
        return document_id


class LoggingNotifier:
    async def notify(self, target_id: Any, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(f"[NOTIFY] {event_type} -> {target_id}: {payload}")


def get_document_generator() -> DocumentGenerator:
    if settings.document_service_enabled:
        return HttpDocumentGenerator(settings.document_service_url)
    return LoggingDocumentGenerator()


def get_notifier() -> Notifier:
    if settings.notifications_enabled:
        return WebhookNotifier(settings.notification_webhook_url)
    return LoggingNotifier()
