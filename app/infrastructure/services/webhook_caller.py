"""Outbound webhook calls over a shared httpx.AsyncClient (implements IWebhookCaller)."""

from __future__ import annotations

from typing import Any

import httpx

from app.domain.exceptions import ActionExecutionException
from app.shared.enums import ActionType
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

_EXCERPT_CHARS = 500


class HttpxWebhookCaller:
    """IWebhookCaller backed by httpx. Network errors, timeouts and non-2xx responses raise."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout_seconds: float = 10.0,
        user_agent: str | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._user_agent = user_agent

    async def call(
        self,
        url: str,
        method: str,
        headers: dict[str, str],
        body: str | None,
    ) -> dict[str, Any]:
        request_headers = dict(headers or {})
        if self._user_agent:
            request_headers.setdefault("User-Agent", self._user_agent)
        try:
            resp = await self._client.request(
                method,
                url,
                headers=request_headers,
                content=body.encode() if body is not None else None,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise ActionExecutionException(
                ActionType.WEBHOOK.value, f"timed out calling {url}"
            ) from e
        except httpx.HTTPError as e:
            raise ActionExecutionException(
                ActionType.WEBHOOK.value, f"request to {url} failed: {e}"
            ) from e

        if not resp.is_success:
            logger.warning(
                "Webhook %s %s returned status=%d", method, url, resp.status_code
            )
            retryable = resp.status_code == 429 or resp.status_code >= 500
            raise ActionExecutionException(
                ActionType.WEBHOOK.value,
                f"{method} {url} returned {resp.status_code}",
                retryable=retryable,
            )
        logger.info("Webhook %s %s returned status=%d", method, url, resp.status_code)
        return {
            "status_code": resp.status_code,
            "response_excerpt": resp.text[:_EXCERPT_CHARS],
        }
