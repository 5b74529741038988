# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Placeholder rendering and field extraction for adapter configs.

Action templates may reference the evaluation context with ``{{ path }}``
placeholders, using the same path syntax as rules. A string that is a
single placeholder keeps the resolved value's type; placeholders embedded
in longer strings are substituted as text.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from fleetplane.errors import RuleEvaluationError
from fleetplane.rules.field_path import resolve_field

_PLACEHOLDER = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, dict | list | tuple):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _lookup(path: str, context: Mapping[str, Any]) -> Any:
    found, value = resolve_field(context, path)
    if not found:
        raise RuleEvaluationError(
            f"Template placeholder '{{{{ {path} }}}}' did not resolve", field=path
        )
    return value


def _render_string(text: str, context: Mapping[str, Any]) -> Any:
    whole = _PLACEHOLDER.fullmatch(text.strip())
    if whole is not None:
        return _lookup(whole.group(1), context)
    return _PLACEHOLDER.sub(lambda m: _as_text(_lookup(m.group(1), context)), text)


def render_template(template: Any, context: Mapping[str, Any]) -> Any:
    """Recursively render placeholders in strings, dict keys excluded.

    Raises:
        RuleEvaluationError: If a placeholder path does not resolve.
    """
    if isinstance(template, str):
        return _render_string(template, context)
    if isinstance(template, Mapping):
        return {key: render_template(value, context) for key, value in template.items()}
    if isinstance(template, list | tuple):
        return [render_template(item, context) for item in template]
    return template


def extract_fields(
    paths: Mapping[str, str], context: Mapping[str, Any]
) -> dict[str, Any]:
    """Extract ``{name: value}`` for every path that resolves; missing paths are skipped."""
    data: dict[str, Any] = {}
    for name, path in paths.items():
        found, value = resolve_field(context, path)
        if found:
            data[name] = value
    return data


__all__ = ["extract_fields", "render_template"]
