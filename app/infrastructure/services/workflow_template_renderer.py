"""Workflow message templates: inline Jinja strings and named subject/body pairs."""

from __future__ import annotations

from typing import Any

from jinja2 import Environment, Template, TemplateError

# Named email templates: key -> (subject_template, body_template)
# Context: lead (target record), trigger (triggering payload), context (execution context),
# execution (id / workflow_id / record_id)
_DEFAULT_TEMPLATES: dict[str, tuple[str, str]] = {
    "welcome": (
        "Welcome, {{ lead.get('name') or 'there' }}!",
        "Hi {{ lead.get('name') or 'there' }},\n\n"
        "Thanks for your interest. We will be in touch shortly.",
    ),
    "follow_up": (
        "Following up on your enquiry",
        "Hi {{ lead.get('name') or 'there' }},\n\n"
        "Just checking in about {{ context.get('topic', 'your enquiry') }}.",
    ),
    "status_update": (
        "Your status is now {{ lead.get('status', '') }}",
        "Hi {{ lead.get('name') or 'there' }},\n\nYour status changed to "
        "{{ lead.get('status', '') }}.",
    ),
}


class WorkflowTemplateRenderer:
    """Renders action text (messages, task titles, webhook bodies) with Jinja2."""

    def __init__(
        self,
        templates: dict[str, tuple[str, str]] | None = None,
    ) -> None:
        """Initialize with optional template dict; falls back to _DEFAULT_TEMPLATES."""
        self._templates = templates or _DEFAULT_TEMPLATES
        self._env = Environment(autoescape=False)
        self._compiled: dict[str, tuple[Template, Template]] = {}
        for key, (sub_str, body_str) in self._templates.items():
            self._compiled[key] = (
                self._env.from_string(sub_str),
                self._env.from_string(body_str),
            )

    def render_text(self, source: str, context: dict[str, Any]) -> str:
        """Render an inline template string. Raises ValueError on syntax or render errors."""
        if "{" not in source:
            return source
        try:
            return self._env.from_string(source).render(**context)
        except TemplateError as e:
            raise ValueError(f"Template error: {e}") from e

    def render_named(self, key: str, context: dict[str, Any]) -> tuple[str, str]:
        """Render subject and body for the template key. Raises ValueError if key unknown."""
        if key not in self._compiled:
            raise ValueError(f"Unknown workflow template: {key}")
        subject_tpl, body_tpl = self._compiled[key]
        try:
            return subject_tpl.render(**context), body_tpl.render(**context)
        except TemplateError as e:
            raise ValueError(f"Template error in {key!r}: {e}") from e
