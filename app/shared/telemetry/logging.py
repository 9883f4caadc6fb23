"""Logging configuration for the automation engine."""

import logging
import sys

from app.core.config import get_settings
from app.core.tenant_context import get_correlation_id, get_tenant_id


class RequestContextFilter(logging.Filter):
    """Stamp tenant_id and correlation_id (or "-") on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = get_tenant_id() or "-"
        record.correlation_id = get_correlation_id() or "-"
        return True


def setup_logging() -> None:
    """Configure application-wide logging.

    Level comes from settings.log_level, forced to DEBUG when settings.debug
    is True. Output goes to stdout with tenant and correlation ids.
    """
    settings = get_settings()
    log_level = (
        logging.DEBUG
        if settings.debug
        else logging.getLevelName(settings.log_level.upper())
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    logging.basicConfig(
        level=log_level,
        format=(
            "%(asctime)s - %(name)s - %(levelname)s - "
            "[tenant=%(tenant_id)s corr=%(correlation_id)s] %(message)s"
        ),
        handlers=[handler],
    )
    # httpx logs every request at INFO; webhook actions log their own outcome.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
