"""Service interfaces (ports) for the application layer.

Protocols define contracts for the CRM collaborators that workflow actions
drive (DIP). Lead persistence, messaging and task storage live outside
this service; only these calls are consumed.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from app.shared.enums import TriggerType


# Lead / record store
class ILeadStore(Protocol):
    """Protocol for the tenant's lead store (target records of workflow actions)."""

    async def get(self, tenant_id: str, lead_id: str) -> dict[str, Any] | None:
        """Return the lead record, or None when it does not exist."""

    async def update(
        self, tenant_id: str, lead_id: str, patch: dict[str, Any]
    ) -> dict[str, Any]:
        """Apply a field patch and return the updated record."""

    async def add_tag(self, tenant_id: str, lead_id: str, tag: str) -> dict[str, Any]:
        """Add a tag (idempotent) and return the updated record."""

    async def remove_tag(self, tenant_id: str, lead_id: str, tag: str) -> dict[str, Any]:
        """Remove a tag (idempotent) and return the updated record."""

    async def change_status(
        self, tenant_id: str, lead_id: str, status: str
    ) -> dict[str, Any]:
        """Set the lead's pipeline status and return the updated record."""

    async def assign_user(
        self, tenant_id: str, lead_id: str, user_id: str
    ) -> dict[str, Any]:
        """Assign the lead to a user and return the updated record."""


@runtime_checkable
class ILeadEventObserver(Protocol):
    """Optional capability of a lead store: learn leads from incoming lead events.

    Process-local stores implement it so that leads announced through the
    events API become targets for later actions and manual triggers. Stores
    backed by the CRM itself do not need it.
    """

    def observe_event(
        self, tenant_id: str, trigger_type: TriggerType, payload: dict[str, Any]
    ) -> None:
        """Record the lead carried by the event payload, if any."""


# Outbound messaging channel (email / WhatsApp)
class IMessagingChannel(Protocol):
    """Protocol for outbound messages sent by send_email / send_whatsapp actions."""

    async def send_email(
        self,
        tenant_id: str,
        recipients: list[str],
        subject: str,
        body: str,
    ) -> dict[str, Any]:
        """Send an email; return provider metadata (e.g. message id)."""

    async def send_whatsapp(
        self,
        tenant_id: str,
        phone: str,
        message: str,
        media_url: str | None = None,
    ) -> dict[str, Any]:
        """Send a WhatsApp message; return provider metadata."""


# Task service
class ITaskService(Protocol):
    """Protocol for follow-up task creation (create_task action)."""

    async def create_task(
        self,
        tenant_id: str,
        title: str,
        *,
        description: str | None,
        due_at: datetime,
        assignee: str | None,
        lead_id: str | None,
    ) -> str:
        """Create a task; return its id."""


# Generic webhook caller
class IWebhookCaller(Protocol):
    """Protocol for outbound HTTP calls made by the webhook action."""

    async def call(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
    ) -> dict[str, Any]:
        """Perform the request; return status code and a response excerpt.

        Raises ActionExecutionException on network errors, timeouts and
        non-2xx responses.
        """


# Message/webhook templating
class ITemplateRenderer(Protocol):
    """Protocol for rendering action text with lead/trigger/context variables."""

    def render_text(self, source: str, context: dict[str, Any]) -> str:
        """Render an inline template string. Raises ValueError on template errors."""

    def render_named(self, key: str, context: dict[str, Any]) -> tuple[str, str]:
        """Render (subject, body) of a registered template. Raises ValueError for unknown keys."""
