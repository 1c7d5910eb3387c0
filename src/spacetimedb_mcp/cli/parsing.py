"""Input parsing utilities for CLI commands."""

from __future__ import annotations

import json
from typing import Any


def parse_value(text: str) -> Any:
    """Parse a value as JSON, falling back to the raw string.

    Examples:
        "42" -> 42, "true" -> True, "Alice" -> "Alice", '"42"' -> "42"
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def parse_filter(specs: list[str] | None) -> dict[str, Any] | None:
    """Parse ``column=value`` pairs into an equality filter.

    A single argument holding a JSON object is also accepted.

    Raises:
        ValueError: If a pair has no ``=``
    """
    if not specs:
        return None
    if len(specs) == 1 and specs[0].lstrip().startswith("{"):
        parsed = json.loads(specs[0])
        if not isinstance(parsed, dict):
            raise ValueError("Filter JSON must be an object")
        return parsed

    result: dict[str, Any] = {}
    for spec in specs:
        if "=" not in spec:
            raise ValueError(f"Invalid filter: '{spec}'. Expected format: column=value")
        column, value = spec.split("=", 1)
        result[column.strip()] = parse_value(value.strip())
    return result


def parse_arguments(values: list[str] | None) -> list[Any]:
    """Parse reducer arguments.

    Either one JSON array (``'["Alice", 42]'``) or several values, each parsed
    with :func:`parse_value`.
    """
    if not values:
        return []
    if len(values) == 1 and values[0].lstrip().startswith("["):
        parsed = json.loads(values[0])
        if isinstance(parsed, list):
            return parsed
    return [parse_value(v) for v in values]
