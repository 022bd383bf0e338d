"""Hand-off of raised SOS tickets to the external notification dispatcher."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from safetrails.core.config import Settings
from safetrails.models.sos_ticket import SosTicket

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def dispatch(self, ticket: SosTicket) -> None: ...


def _payload(ticket: SosTicket) -> dict[str, Any]:
    return {
        "ticket_id": ticket.id,
        "user_id": ticket.user_id,
        "trip_id": ticket.trip_id,
        "sos_type": ticket.sos_type,
        "location": ticket.location,
        "latitude": ticket.latitude,
        "longitude": ticket.longitude,
        "contacts": ticket.contact_snapshot,
        "created_at": ticket.created_at.isoformat() if ticket.created_at else None,
    }


class LoggingDispatcher:
    """Default dispatcher when no webhook is configured."""

    def dispatch(self, ticket: SosTicket) -> None:
        logger.info(
            "SOS %s: dispatch requested for %s contacts (no dispatcher configured)",
            ticket.id,
            len(ticket.contact_snapshot or []),
        )


class WebhookDispatcher:
    """POSTs the ticket and its contact snapshot to the dispatcher service.

    Delivery is the dispatcher's job; failures here are logged, not retried.
    """

    def __init__(self, url: str, timeout: float = 5.0) -> None:
        self._url = url
        self._timeout = timeout

    def dispatch(self, ticket: SosTicket) -> None:
        try:
            response = httpx.post(self._url, json=_payload(ticket), timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("SOS %s: notification dispatch failed: %s", ticket.id, exc)
            return
        logger.info("SOS %s: handed to dispatcher (%s)", ticket.id, response.status_code)


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    if settings.notification_webhook_url:
        return WebhookDispatcher(settings.notification_webhook_url, settings.http_timeout_seconds)
    return LoggingDispatcher()
