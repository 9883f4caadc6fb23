"""Identifiers for workflows, executions, version rows, tasks and outbound messages."""

from cuid2 import cuid_wrapper

_cuid = cuid_wrapper()


def generate_cuid() -> str:
    """Return a new CUID2 string."""
    return _cuid()
