"""Shared utilities: datetime, generators, relative durations."""

from app.shared.utils.datetime import ensure_utc, start_of_day, start_of_hour, utc_now
from app.shared.utils.durations import parse_relative_duration
from app.shared.utils.generators import generate_cuid

__all__ = [
    "generate_cuid",
    "utc_now",
    "ensure_utc",
    "start_of_day",
    "start_of_hour",
    "parse_relative_duration",
]
