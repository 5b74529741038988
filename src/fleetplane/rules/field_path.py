# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Field path parsing and resolution over JSON-like documents.

Paths are dotted key segments with optional bracket selectors::

    resource.spec.region
    resource.status.conditions[0].status
    resource.labels["app.kubernetes.io/name"]
    statuses[adapterName=="dns"].conditions[type=="Available"].status
    action.status.conditions[-1].type

A filter selector ``[key==literal]`` (or ``[key=literal]``) picks the
first element of a list, or the first value of a mapping, whose ``key``
equals the literal. Literals may be quoted strings, integers, floats,
``true``, ``false`` or ``null``; any other bare word is a string.

Parsed paths are cached. Resolution never raises for missing data: it
reports whether the path was found.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from fleetplane.errors import RuleEvaluationError

_INT_PATTERN = re.compile(r"^-?\d+$")
_FLOAT_PATTERN = re.compile(r"^-?\d+\.\d+([eE][-+]?\d+)?$")

# Simple dict cache with a size limit so it can be cleared from tests.
_PATH_CACHE: dict[str, tuple[PathSegment, ...]] = {}
_PATH_CACHE_MAX_SIZE = 1024


def values_equal(left: Any, right: Any) -> bool:
    """Equality that never treats booleans as integers."""
    left_is_bool = isinstance(left, bool)
    right_is_bool = isinstance(right, bool)
    if left_is_bool or right_is_bool:
        return left_is_bool and right_is_bool and left == right
    return bool(left == right)


@dataclass(frozen=True)
class KeySegment:
    name: str

    def apply(self, current: Any) -> tuple[bool, Any]:
        if isinstance(current, Mapping) and self.name in current:
            return True, current[self.name]
        return False, None


@dataclass(frozen=True)
class IndexSegment:
    index: int

    def apply(self, current: Any) -> tuple[bool, Any]:
        if isinstance(current, list | tuple) and -len(current) <= self.index < len(current):
            return True, current[self.index]
        return False, None


@dataclass(frozen=True)
class FilterSegment:
    key: str
    value: Any

    def apply(self, current: Any) -> tuple[bool, Any]:
        if isinstance(current, Mapping):
            candidates = list(current.values())
        elif isinstance(current, list | tuple):
            candidates = list(current)
        else:
            return False, None
        for item in candidates:
            if (
                isinstance(item, Mapping)
                and self.key in item
                and values_equal(item[self.key], self.value)
            ):
                return True, item
        return False, None


PathSegment = KeySegment | IndexSegment | FilterSegment


def _parse_literal(raw: str) -> Any:
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if _INT_PATTERN.match(text):
        return int(text)
    if _FLOAT_PATTERN.match(text):
        return float(text)
    return text


def _find_closing_bracket(path: str, start: int) -> int:
    quote: str | None = None
    for pos in range(start + 1, len(path)):
        char = path[pos]
        if quote is not None:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "]":
            return pos
    raise RuleEvaluationError(f"Unterminated '[' in field path '{path}'", field=path)


def _parse_bracket(path: str, content: str) -> PathSegment:
    text = content.strip()
    if not text:
        raise RuleEvaluationError(f"Empty selector '[]' in field path '{path}'", field=path)
    if _INT_PATTERN.match(text):
        return IndexSegment(int(text))
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return KeySegment(text[1:-1])
    eq_pos = text.find("=")
    if eq_pos > 0:
        key = text[:eq_pos].strip()
        if key and key[-1] in "!<>":
            raise RuleEvaluationError(
                f"Unsupported filter operator '{key[-1]}=' in field path '{path}'; "
                "selectors only match with '=='",
                field=path,
            )
        rest = text[eq_pos + 1 :]
        if rest.startswith("="):
            rest = rest[1:]
        if key and rest.strip():
            return FilterSegment(key=key, value=_parse_literal(rest))
    raise RuleEvaluationError(
        f"Invalid selector '[{content}]' in field path '{path}'", field=path
    )


def _parse(path: str) -> tuple[PathSegment, ...]:
    if not path or not path.strip():
        raise RuleEvaluationError("Empty field path", field=path)

    segments: list[PathSegment] = []
    pos = 0
    length = len(path)
    while pos < length:
        char = path[pos]
        if char == "[":
            end = _find_closing_bracket(path, pos)
            segments.append(_parse_bracket(path, path[pos + 1 : end]))
            pos = end + 1
            if pos < length and path[pos] not in ".[":
                raise RuleEvaluationError(
                    f"Unexpected '{path[pos]}' after selector in field path '{path}'",
                    field=path,
                )
        elif char == ".":
            raise RuleEvaluationError(f"Empty segment in field path '{path}'", field=path)
        else:
            end = pos
            while end < length and path[end] not in ".[":
                end += 1
            name = path[pos:end].strip()
            if not name:
                raise RuleEvaluationError(
                    f"Empty segment in field path '{path}'", field=path
                )
            segments.append(KeySegment(name))
            pos = end

        if pos < length and path[pos] == ".":
            pos += 1
            if pos >= length:
                raise RuleEvaluationError(
                    f"Trailing '.' in field path '{path}'", field=path
                )
    return tuple(segments)


def parse_field_path(path: str) -> tuple[PathSegment, ...]:
    """Parse a field path into segments, using the path cache.

    Raises:
        RuleEvaluationError: If the path is syntactically invalid.
    """
    cached = _PATH_CACHE.get(path)
    if cached is not None:
        return cached
    segments = _parse(path)
    if len(_PATH_CACHE) >= _PATH_CACHE_MAX_SIZE:
        _PATH_CACHE.clear()
    _PATH_CACHE[path] = segments
    return segments


def clear_path_cache() -> None:
    _PATH_CACHE.clear()


def resolve_field(document: Any, path: str) -> tuple[bool, Any]:
    """Resolve ``path`` against ``document``.

    Returns:
        ``(found, value)``. ``value`` is None when not found; a found
        ``None`` (JSON null) is distinguished by ``found`` being True.
    """
    current = document
    for segment in parse_field_path(path):
        found, current = segment.apply(current)
        if not found:
            return False, None
    return True, current


__all__ = [
    "FilterSegment",
    "IndexSegment",
    "KeySegment",
    "PathSegment",
    "clear_path_cache",
    "parse_field_path",
    "resolve_field",
    "values_equal",
]
