"""Domain exceptions for the CRM automation engine.

Defines domain-level exceptions that represent business rule violations
and workflow run failures. These exceptions are independent of
infrastructure concerns. Presentation layer maps them to HTTP responses
in exception handlers; the execution engine records their message on the
execution audit record.
"""

from typing import Any


class AutomationException(Exception):
    """Base exception for all automation engine errors.

    All custom exceptions should inherit from this class to allow
    consistent error handling and logging. Presentation layer maps
    these to HTTP responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, resource_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body used by the API exception handler."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(AutomationException):
    """Raised when input validation fails (e.g. invalid format or range)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class ResourceNotFoundException(AutomationException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'workflow', 'lead').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class WorkflowStateException(AutomationException):
    """Raised when a lifecycle transition is not allowed from the current status."""

    def __init__(self, workflow_id: str, current_status: str, operation: str) -> None:
        super().__init__(
            f"Cannot {operation} workflow {workflow_id} in status '{current_status}'",
            "WORKFLOW_STATE_ERROR",
            {
                "workflow_id": workflow_id,
                "status": current_status,
                "operation": operation,
            },
        )


class WorkflowInactiveException(AutomationException):
    """Raised when a manual run targets a workflow that is not active."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(
            f"Workflow is not active: {workflow_id}",
            "WORKFLOW_INACTIVE",
            {"workflow_id": workflow_id},
        )


class WorkflowVersionConflictException(AutomationException):
    """Raised when a concurrent edit won the definition version update (optimistic lock)."""

    def __init__(self, workflow_id: str, expected_version: int) -> None:
        super().__init__(
            "Workflow was updated by another request; reload and retry.",
            "WORKFLOW_VERSION_CONFLICT",
            {"workflow_id": workflow_id, "expected_version": expected_version},
        )


class ExecutionAlreadyFinalizedException(AutomationException):
    """Raised when terminal fields of an execution would be written a second time."""

    def __init__(self, execution_id: str, status: str) -> None:
        super().__init__(
            f"Execution {execution_id} is already {status}",
            "EXECUTION_ALREADY_FINALIZED",
            {"execution_id": execution_id, "status": status},
        )


class ConditionEvaluationException(AutomationException):
    """Raised for a malformed condition (bad field path or unknown operator).

    Never escapes the condition evaluator: the condition is treated as false.
    """

    def __init__(self, message: str, field: Any = None, operator: Any = None) -> None:
        super().__init__(
            message,
            "CONDITION_EVALUATION_ERROR",
            {"field": field, "operator": operator},
        )


class ActionException(AutomationException):
    """Base for failures raised while running a single workflow action."""

    def __init__(
        self,
        message: str,
        error_code: str,
        action_type: str,
        order: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"action_type": action_type, "order": order, **(details or {})}
        super().__init__(message, error_code, merged)
        self.action_type = action_type
        self.order = order


class ActionConfigException(ActionException):
    """Raised when an action is missing required config for its type. Not retried."""

    def __init__(
        self,
        action_type: str,
        message: str,
        order: int | None = None,
        fields: list[str] | None = None,
    ) -> None:
        super().__init__(
            f"Invalid config for {action_type}: {message}",
            "ACTION_CONFIG_ERROR",
            action_type,
            order,
            {"fields": fields or []},
        )


class ActionExecutionException(ActionException):
    """Raised when a downstream channel fails (network, rate limit, invalid recipient)."""

    def __init__(
        self,
        action_type: str,
        message: str,
        order: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(
            message,
            "ACTION_EXECUTION_ERROR",
            action_type,
            order,
            {"retryable": retryable},
        )
        self.retryable = retryable


class ExecutionTimeoutException(AutomationException):
    """Raised when an execution exceeds the workflow's limits.execution_timeout_ms."""

    def __init__(self, workflow_id: str, timeout_ms: int) -> None:
        super().__init__(
            f"Workflow execution exceeded timeout of {timeout_ms} ms",
            "EXECUTION_TIMEOUT",
            {"workflow_id": workflow_id, "timeout_ms": timeout_ms},
        )


class AdmissionRejectedException(AutomationException):
    """Raised when a workflow's hourly or daily execution budget is exhausted."""

    def __init__(self, workflow_id: str, window: str, limit: int) -> None:
        super().__init__(
            f"Rate limit exceeded: max_executions_per_{window} ({limit}) reached",
            "ADMISSION_REJECTED",
            {"workflow_id": workflow_id, "window": window, "limit": limit},
        )


class SqlNotConfiguredException(AutomationException):
    """Raised when an operation requires a SQL database but the backend is not configured."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )
