"""Parse command-line client output into rows.

``spacetime sql`` prints JSON when asked to, and otherwise a pipe-delimited
table::

     id | name  | online
    ----+-------+--------
     1  | "Bob" | true

Cells are coerced best-effort: integers, floats, booleans, and double-quoted
strings (quotes stripped). Anything else stays a string.
"""

from __future__ import annotations

import json
import re
from typing import Any

_SEPARATOR_RE = re.compile(r"^[\s\-+|=]+$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_ROW_COUNT_RE = re.compile(r"^\(\d+ rows?\)$")
_IDENTITY_RE = re.compile(r"(?:0x)?([a-f0-9]{40,})", re.IGNORECASE)
# A quoted string (with backslash escapes) or a bare cell separator
_CELL_TOKEN_RE = re.compile(r'"(?:[^"\\]|\\.)*"|\|')


def coerce_scalar(cell: str) -> Any:
    """Convert one table cell into a number, bool or unquoted string."""
    text = cell.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1].replace('\\"', '"')
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    return text


def _split_cells(line: str) -> list[str]:
    """Split a table line on ``|``, keeping pipes inside double-quoted cells."""
    body = line.strip().strip("|")
    cells: list[str] = []
    start = 0
    for match in _CELL_TOKEN_RE.finditer(body):
        if match.group() == "|":
            cells.append(body[start : match.start()].strip())
            start = match.end()
    cells.append(body[start:].strip())
    return cells


def parse_tabular(text: str) -> list[dict[str, Any]]:
    """Parse a header/separator/rows table.

    Returns an empty list when the text has no recognizable header and
    separator line.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2 or not _SEPARATOR_RE.match(lines[1]) or "-" not in lines[1]:
        return []

    headers = _split_cells(lines[0])
    rows: list[dict[str, Any]] = []
    for line in lines[2:]:
        if _ROW_COUNT_RE.match(line.strip()):
            continue
        cells = _split_cells(line)
        cells += [""] * (len(headers) - len(cells))
        rows.append({h: coerce_scalar(c) for h, c in zip(headers, cells, strict=False)})
    return rows


def parse_result_text(text: str) -> list[Any]:
    """Parse client output as JSON when possible, else as a table.

    A JSON object becomes a one-row list. Unparseable text yields no rows.
    """
    stripped = text.strip()
    if not stripped:
        return []
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        return parse_tabular(stripped)
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def parse_identities(text: str) -> list[str]:
    """Extract hex identities (one per line) from ``spacetime identity list``."""
    identities: list[str] = []
    for line in text.splitlines():
        match = _IDENTITY_RE.search(line)
        if match:
            identities.append(match.group(1).lower())
    return identities
