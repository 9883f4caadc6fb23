"""Tests for domain exceptions (error_code, message, details)."""

import pytest

from app.domain.exceptions import (
    ActionConfigException,
    ActionException,
    ActionExecutionException,
    AdmissionRejectedException,
    AutomationException,
    ConditionEvaluationException,
    ExecutionAlreadyFinalizedException,
    ExecutionTimeoutException,
    ResourceNotFoundException,
    SqlNotConfiguredException,
    ValidationException,
    WorkflowInactiveException,
    WorkflowStateException,
    WorkflowVersionConflictException,
)


def test_automation_exception_default_error_code() -> None:
    """Base AutomationException uses class name as error_code when not provided."""
    exc = AutomationException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "AutomationException"
    assert exc.details == {}


def test_automation_exception_to_dict() -> None:
    exc = AutomationException("Oops", error_code="CUSTOM", details={"key": "value"})
    assert exc.to_dict() == {"error": "CUSTOM", "message": "Oops", "details": {"key": "value"}}


def test_validation_exception() -> None:
    """ValidationException sets VALIDATION_ERROR and optional field in details."""
    assert ValidationException("Invalid", field="name").details == {"field": "name"}
    assert ValidationException("Invalid").details == {}


def test_resource_not_found_exception() -> None:
    exc = ResourceNotFoundException("workflow", "wf-1")
    assert exc.message == "workflow not found: wf-1"
    assert exc.error_code == "RESOURCE_NOT_FOUND"
    assert exc.details == {"resource_type": "workflow", "resource_id": "wf-1"}


def test_workflow_state_exception() -> None:
    exc = WorkflowStateException("wf-1", "archived", "activate")
    assert exc.message == "Cannot activate workflow wf-1 in status 'archived'"
    assert exc.error_code == "WORKFLOW_STATE_ERROR"


def test_workflow_inactive_and_version_conflict() -> None:
    assert WorkflowInactiveException("wf-1").error_code == "WORKFLOW_INACTIVE"
    conflict = WorkflowVersionConflictException("wf-1", 3)
    assert conflict.error_code == "WORKFLOW_VERSION_CONFLICT"
    assert conflict.details["expected_version"] == 3


def test_execution_already_finalized() -> None:
    exc = ExecutionAlreadyFinalizedException("ex-1", "completed")
    assert exc.message == "Execution ex-1 is already completed"


def test_condition_evaluation_exception_details() -> None:
    exc = ConditionEvaluationException("bad", field="a..b", operator="equals")
    assert exc.details == {"field": "a..b", "operator": "equals"}


def test_action_config_exception_is_action_exception() -> None:
    exc = ActionConfigException("send_email", "subject: Field required", 2, ["subject"])
    assert isinstance(exc, ActionException)
    assert exc.message == "Invalid config for send_email: subject: Field required"
    assert exc.details == {"action_type": "send_email", "order": 2, "fields": ["subject"]}
    assert exc.order == 2


@pytest.mark.parametrize("retryable", [True, False])
def test_action_execution_exception_retryable_flag(retryable: bool) -> None:
    exc = ActionExecutionException("webhook", "returned 503", 1, retryable=retryable)
    assert exc.message == "returned 503"
    assert exc.details["action_type"] == "webhook"
    assert exc.retryable is retryable
    assert exc.details["retryable"] is retryable


def test_execution_timeout_message() -> None:
    exc = ExecutionTimeoutException("wf-1", 30000)
    assert exc.message == "Workflow execution exceeded timeout of 30000 ms"
    assert exc.error_code == "EXECUTION_TIMEOUT"


def test_admission_rejected_names_window_and_limit() -> None:
    exc = AdmissionRejectedException("wf-1", "hour", 100)
    assert exc.message == "Rate limit exceeded: max_executions_per_hour (100) reached"
    assert exc.details == {"workflow_id": "wf-1", "window": "hour", "limit": 100}


def test_sql_not_configured_exception() -> None:
    exc = SqlNotConfiguredException()
    assert exc.error_code == "SERVICE_UNAVAILABLE"
