"""CRM collaborator factory: builds the lead store, task service and messaging channel.

Each collaborator setting is either "memory" (the process-local stand-in)
or a "package.module:callable" import path. The callable receives the
Settings and returns an object implementing the matching port, so a CRM
adapter can be wired without touching the lifespan.
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from app.shared.telemetry.logging import get_logger

if TYPE_CHECKING:
    from app.application.interfaces.services import (
        ILeadStore,
        IMessagingChannel,
        ITaskService,
    )
    from app.core.config import Settings

logger = get_logger(__name__)

MEMORY = "memory"


def _load_callable(path: str, setting: str) -> Callable[..., Any]:
    """Resolve "package.module:callable". Raises ValueError on a bad path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"{setting.upper()} must be 'memory' or 'package.module:callable', got: {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"{setting.upper()}: cannot import module {module_name!r}") from e
    target = getattr(module, attr, None)
    if not callable(target):
        raise ValueError(f"{setting.upper()}: {path!r} is not a callable")
    return target


class CollaboratorFactory:
    """Factory for the CRM collaborators that workflow actions drive."""

    @staticmethod
    def create_lead_store(settings: "Settings | None" = None) -> "ILeadStore":
        """Create the lead store from settings.

        Returns:
            InMemoryLeadStore, or the object built by CRM_LEAD_STORE.

        Raises:
            ValueError: Malformed or unresolvable import path.
        """
        from app.core.config import get_settings

        s = settings or get_settings()
        if s.crm_lead_store.lower() == MEMORY:
            from app.infrastructure.services.lead_store import InMemoryLeadStore

            return InMemoryLeadStore()
        logger.info("Using lead store %s", s.crm_lead_store)
        return _load_callable(s.crm_lead_store, "crm_lead_store")(s)

    @staticmethod
    def create_task_service(settings: "Settings | None" = None) -> "ITaskService":
        """Create the task service from settings.

        Raises:
            ValueError: Malformed or unresolvable import path.
        """
        from app.core.config import get_settings

        s = settings or get_settings()
        if s.crm_task_service.lower() == MEMORY:
            from app.infrastructure.services.lead_store import InMemoryTaskService

            return InMemoryTaskService(history_limit=s.adapter_history_limit)
        logger.info("Using task service %s", s.crm_task_service)
        return _load_callable(s.crm_task_service, "crm_task_service")(s)

    @staticmethod
    def create_messaging_channel(settings: "Settings | None" = None) -> "IMessagingChannel":
        """Create the outbound email / WhatsApp channel from settings.

        Raises:
            ValueError: Malformed or unresolvable import path.
        """
        from app.core.config import get_settings

        s = settings or get_settings()
        if s.crm_messaging_channel.lower() == MEMORY:
            from app.infrastructure.services.messaging_channel import (
                LogOnlyMessagingChannel,
            )

            return LogOnlyMessagingChannel(history_limit=s.adapter_history_limit)
        logger.info("Using messaging channel %s", s.crm_messaging_channel)
        return _load_callable(s.crm_messaging_channel, "crm_messaging_channel")(s)
