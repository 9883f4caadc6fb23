"""traced decorator: return values and exceptions pass through unchanged."""

import pytest

from app.domain.exceptions import ActionConfigException
from app.shared.telemetry.tracing import traced


@traced("test.sync")
def _double(value: int) -> int:
    return value * 2


@traced()
async def _fail(workflow_id: str) -> None:
    raise ActionConfigException("webhook", "url is required")


def test_traced_preserves_sync_result_and_name() -> None:
    assert _double(21) == 42
    assert _double.__name__ == "_double"


async def test_traced_reraises_automation_errors() -> None:
    with pytest.raises(ActionConfigException) as exc_info:
        await _fail(workflow_id="wf-1")
    assert exc_info.value.message == "Invalid config for webhook: url is required"
    assert exc_info.value.error_code == "ACTION_CONFIG_ERROR"
