"""Tracing helpers for engine, dispatcher and executor operations.

Spans go through the OpenTelemetry API only; without an installed SDK they
are non-recording and cost next to nothing. Every span opened by `traced`
carries the request's tenant and correlation id, so a workflow run started
from an API call can be joined back to that call.
"""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from app.core.tenant_context import get_correlation_id, get_tenant_id

# Keyword arguments recorded as span attributes (case-insensitive).
# Trigger payloads and action configs can carry PII, so they are never recorded.
_SAFE_SPAN_ATTR_KEYS = frozenset({
    "id", "tenant_id", "workflow_id", "execution_id", "record_id",
    "trigger_type", "status", "limit", "skip",
})


def _open_span(
    span: trace.Span,
    attributes: dict[str, str | int | float | bool] | None,
    kwargs: dict[str, Any],
) -> None:
    tenant_id = get_tenant_id()
    if tenant_id:
        span.set_attribute("automation.tenant_id", tenant_id)
    correlation_id = get_correlation_id()
    if correlation_id:
        span.set_attribute("automation.correlation_id", correlation_id)
    for key, value in (attributes or {}).items():
        span.set_attribute(key, value)
    for key, value in kwargs.items():
        if not key.startswith("_") and key.lower() in _SAFE_SPAN_ATTR_KEYS:
            span.set_attribute(f"arg.{key}", str(value))


def _fail_span(span: trace.Span, exception: BaseException) -> None:
    span.set_status(Status(StatusCode.ERROR, str(exception)))
    span.record_exception(exception)
    error_code = getattr(exception, "error_code", None)
    if error_code:
        span.set_attribute("error.code", error_code)


def traced(
    operation_name: str | None = None,
    attributes: dict | None = None,
) -> Callable:
    """Run the decorated function (sync or async) inside a span.

    Args:
        operation_name: Span name (defaults to module.funcname).
        attributes: Static attributes set on every span.

    Exceptions are recorded on the span (with `error.code` for
    AutomationException subclasses) and re-raised unchanged.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(__name__)
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, record_exception=False, set_status_on_exception=False
            ) as span:
                _open_span(span, attributes, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _fail_span(span, e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with tracer.start_as_current_span(
                span_name, record_exception=False, set_status_on_exception=False
            ) as span:
                _open_span(span, attributes, kwargs)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _fail_span(span, e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Add an event (e.g. a delay or retry) to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})

