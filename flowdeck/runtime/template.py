"""
template.py - Mustache-style placeholder rendering for step prompts.

Supports nested access like ``{{task.title}}`` and ``{{steps.plan.output}}``.
Placeholders that cannot be resolved are left in the output verbatim so a
broken template stays visible in the rendered prompt.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Tuple

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

_MISSING = object()


def lookup_path(context: Mapping[str, Any], path: str) -> Tuple[bool, Any]:
    """Walk a dotted path through nested mappings.

    Returns:
        (found, value). found is False when a key is missing at any level or
        the walk reaches a non-mapping before the path ends.

    Examples:
        >>> lookup_path({"a": {"b": "x"}}, "a.b")
        (True, 'x')
        >>> lookup_path({"a": "x"}, "a.b")
        (False, None)
    """
    current: Any = context
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return False, None
        current = current.get(part, _MISSING)
        if current is _MISSING:
            return False, None
    return True, current


def stringify(value: Any) -> str:
    """String form used for substitution."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render ``{{ dotted.path }}`` placeholders against a context mapping.

    Whitespace around the key is ignored.

    Args:
        template: Template string with {{variable}} placeholders.
        context: Mapping of values (can be nested).

    Returns:
        Rendered string with substitutions applied.

    Examples:
        >>> render_template("hi {{a.b}}", {"a": {"b": "x"}})
        'hi x'
        >>> render_template("{{missing}}", {})
        '{{missing}}'
    """

    def replace_match(match: re.Match) -> str:
        found, value = lookup_path(context, match.group(1).strip())
        if not found:
            return match.group(0)
        return stringify(value)

    return PLACEHOLDER_PATTERN.sub(replace_match, template)
