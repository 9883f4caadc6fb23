"""Workflow messaging: log-only email / WhatsApp sender (implements IMessagingChannel)."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any

from app.shared.telemetry.logging import get_logger
from app.shared.utils.datetime import utc_now
from app.shared.utils.generators import generate_cuid

logger = get_logger(__name__)


class LogOnlyMessagingChannel:
    """IMessagingChannel implementation that logs instead of sending.

    Use when no email or WhatsApp provider is configured. Production can
    swap in a provider-backed implementation. The most recent
    `history_limit` messages are kept in `sent` for inspection.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        self.sent: deque[dict[str, Any]] = deque(maxlen=history_limit)

    async def send_email(
        self,
        tenant_id: str,
        recipients: list[str],
        subject: str,
        body: str,
    ) -> dict[str, Any]:
        """Log the email; no actual email sent."""
        message_id = generate_cuid()
        logger.info(
            "Workflow email: would send to %d recipients (tenant=%s, subject=%r)",
            len(recipients),
            tenant_id,
            (subject or "")[:80],
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Workflow email recipients: %s (at %s)",
                recipients,
                utc_now().isoformat(),
            )
        logger.debug("Workflow email body (first 500 chars): %s", (body or "")[:500])
        self.sent.append(
            {
                "channel": "email",
                "tenant_id": tenant_id,
                "recipients": list(recipients),
                "subject": subject,
                "body": body,
                "message_id": message_id,
            }
        )
        return {"message_id": message_id}

    async def send_whatsapp(
        self,
        tenant_id: str,
        phone: str,
        message: str,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        """Log the WhatsApp message; nothing is sent."""
        message_id = generate_cuid()
        logger.info(
            "Workflow WhatsApp: would send to %s (tenant=%s, media=%s)",
            phone,
            tenant_id,
            bool(media_url),
        )
        logger.debug("Workflow WhatsApp message (first 500 chars): %s", (message or "")[:500])
        self.sent.append(
            {
                "channel": "whatsapp",
                "tenant_id": tenant_id,
                "phone": phone,
                "message": message,
                "media_url": media_url,
                "message_id": message_id,
            }
        )
        return {"message_id": message_id}
