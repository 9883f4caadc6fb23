"""Relative duration parsing for action config (e.g. task due dates)."""

import re
from datetime import timedelta

_RELATIVE_RE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$")

_UNIT_SECONDS: dict[str, int] = {
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "month": 30 * 24 * 60 * 60,
}

_ALIASES: dict[str, str] = {
    "min": "minute",
    "mins": "minute",
    "m": "minute",
    "h": "hour",
    "hr": "hour",
    "hrs": "hour",
    "d": "day",
    "w": "week",
    "wk": "week",
    "wks": "week",
}


def parse_relative_duration(value: str) -> timedelta:
    """Parse strings such as "2 days", "1 week" or "30 minutes" into a timedelta.

    Months count as 30 days. Raises ValueError for anything else.
    """
    match = _RELATIVE_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid relative duration: {value!r}")
    amount = int(match.group(1))
    unit = match.group(2).lower()
    unit = _ALIASES.get(unit, unit)
    if unit.endswith("s") and unit[:-1] in _UNIT_SECONDS:
        unit = unit[:-1]
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"Unknown duration unit in {value!r}")
    return timedelta(seconds=amount * _UNIT_SECONDS[unit])
