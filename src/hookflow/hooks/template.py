"""Placeholder substitution for action parameters."""

from __future__ import annotations

import re
from typing import Any, Mapping

from .types import ExecutionContext


_TEMPLATE_RE = re.compile(r"\{\{(\w+)\}\}")


def builtin_values(context: ExecutionContext) -> dict[str, Any]:
    values: dict[str, Any] = {
        key: value
        for key, value in context.trigger.data.items()
        if isinstance(value, (str, int, float, bool))
    }
    values.update(
        {
            "timestamp": context.timestamp,
            "workingDirectory": context.working_directory,
            "hookId": context.hook_id,
            "triggerType": context.trigger.type,
        }
    )
    return values


def substitute(
    template: str,
    variables: Mapping[str, Any],
    environment: Mapping[str, str],
    builtins: Mapping[str, Any] | None = None,
) -> str:
    """Replace ``{{name}}`` in one left-to-right pass.

    Lookup order is variables, then environment, then built-ins; an unknown
    name keeps its literal placeholder text.
    """
    extra = builtins or {}

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        for source in (variables, environment, extra):
            value = source.get(key)
            if value is not None:
                return str(value)
        return match.group(0)

    return _TEMPLATE_RE.sub(_replace, template)


def render_template(value: Any, context: ExecutionContext) -> Any:
    if isinstance(value, dict):
        return {key: render_template(val, context) for key, val in value.items()}
    if isinstance(value, list):
        return [render_template(item, context) for item in value]
    if not isinstance(value, str):
        return value
    if "{{" not in value:
        return value
    return substitute(value, context.variables, context.environment, builtin_values(context))
