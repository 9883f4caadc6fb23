"""Condition evaluation over arbitrary nested records (trigger and action gates).

Pure functions: no I/O, no shared state, safe to call from many concurrent
executions. A malformed condition never raises to the caller; it counts
as a failed condition (fail closed).
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from app.domain.entities.workflow import Condition
from app.domain.exceptions import ConditionEvaluationException
from app.shared.enums import ConditionOperator
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)


class _Undefined:
    """Value of a path that does not resolve. Distinct from None (an explicit null)."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def resolve_path(record: Any, path: str) -> Any:
    """Resolve a dot-separated path ("contact.email", "tags.0") into record.

    Missing keys, out-of-range indices and non-container intermediates
    resolve to UNDEFINED. Raises ConditionEvaluationException for a path
    that is not a non-empty string or has empty segments.
    """
    if not isinstance(path, str) or not path:
        raise ConditionEvaluationException("Condition field must be a non-empty string", field=path)
    segments = path.split(".")
    if any(not s for s in segments):
        raise ConditionEvaluationException(f"Malformed field path: {path!r}", field=path)

    current: Any = record
    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return UNDEFINED
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not segment.isdigit():
                return UNDEFINED
            index = int(segment)
            if index >= len(current):
                return UNDEFINED
            current = current[index]
        else:
            return UNDEFINED
    return current


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (True != 1, "1" != 1, undefined != anything)."""
    if left is UNDEFINED or right is UNDEFINED:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _to_text(value: Any) -> str:
    if value is UNDEFINED or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_to_text(v) for v in value)
    return str(value)


def _to_number(value: Any) -> float:
    """Numeric coercion; anything non-numeric becomes 0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(result):
        return 0.0
    return result


def _is_empty(value: Any) -> bool:
    return value is UNDEFINED or value is None or value == ""


_OPERATORS: dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _strict_equals,
    ConditionOperator.NOT_EQUALS: lambda v, e: not _strict_equals(v, e),
    ConditionOperator.CONTAINS: lambda v, e: _to_text(e) in _to_text(v),
    ConditionOperator.NOT_CONTAINS: lambda v, e: _to_text(e) not in _to_text(v),
    ConditionOperator.GREATER_THAN: lambda v, e: _to_number(v) > _to_number(e),
    ConditionOperator.LESS_THAN: lambda v, e: _to_number(v) < _to_number(e),
    ConditionOperator.IS_EMPTY: lambda v, _e: _is_empty(v),
    ConditionOperator.IS_NOT_EMPTY: lambda v, _e: not _is_empty(v),
}


def evaluate_condition(condition: Condition, record: Any) -> bool:
    """Evaluate one condition. Raises ConditionEvaluationException when malformed."""
    try:
        operator = ConditionOperator(condition.operator)
    except ValueError as e:
        raise ConditionEvaluationException(
            f"Unknown condition operator: {condition.operator!r}",
            field=condition.field,
            operator=condition.operator,
        ) from e
    value = resolve_path(record, condition.field)
    return _OPERATORS[operator](value, condition.value)


def evaluate(conditions: Iterable[Condition], record: Any) -> bool:
    """Return True when every condition holds (logical AND; empty -> True).

    Stops at the first failing condition. A malformed condition is logged
    and counts as failing.
    """
    for condition in conditions:
        try:
            if not evaluate_condition(condition, record):
                return False
        except ConditionEvaluationException as e:
            logger.warning(
                "Condition treated as false: %s (field=%r, operator=%r)",
                e.message,
                condition.field,
                condition.operator,
            )
            return False
    return True


class ConditionEvaluator:
    """Injectable wrapper around evaluate() for services that take collaborators."""

    def evaluate(self, conditions: Iterable[Condition], record: Any) -> bool:
        return evaluate(conditions, record)
