"""Schema-driven decoding of wire values into native Python values.

Rows come back from the server as JSON with no static types attached. Given the
:class:`AlgebraicType` of a column (from the cached schema), :func:`decode`
turns the raw value into an int, float, bool, str, ``datetime``, hex identity
string, dict (products), ``{"variant", "value"}`` dict (sums), list (arrays)
or ``None`` (options), recursing to any depth.

Decoding never raises. A value whose shape does not match its type comes back
unchanged, so one odd column cannot hide the rest of a row from the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from spacetimedb_mcp.schema.algebraic import (
    CONNECTION_ID_FIELD,
    FLOAT_KINDS,
    IDENTITY_FIELD,
    INTEGER_KINDS,
    TIMESTAMP_FIELD,
    AlgebraicType,
    TypeKind,
)
from spacetimedb_mcp.schema.models import TableSchema

logger = logging.getLogger(__name__)

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _decode_int(raw: Any, _: AlgebraicType) -> Any:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else raw
    if isinstance(raw, str):
        text = raw.strip()
        # u128/u256 may arrive as hex strings
        if text.lower().startswith(("0x", "-0x")):
            return int(text, 16)
        return int(text)
    return raw


def _decode_float(raw: Any, _: AlgebraicType) -> Any:
    if isinstance(raw, (int, float, str)) and not isinstance(raw, bool):
        return float(raw)
    return raw


def _decode_bool(raw: Any, _: AlgebraicType) -> bool:
    if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
        return raw.strip().lower() == "true"
    return bool(raw)


def _decode_string(raw: Any, _: AlgebraicType) -> str:
    return raw if isinstance(raw, str) else str(raw)


def _decode_timestamp(raw: Any, _: AlgebraicType) -> Any:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, dict) and TIMESTAMP_FIELD in raw:
        raw = raw[TIMESTAMP_FIELD]
    elif isinstance(raw, list) and len(raw) == 1:
        raw = raw[0]

    if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
        raw = int(raw.strip())
    if isinstance(raw, float):
        # JSON numbers such as 1.7e15
        raw = round(raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return UNIX_EPOCH + timedelta(microseconds=raw)
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return raw


def _decode_identity(raw: Any, _: AlgebraicType) -> Any:
    if isinstance(raw, dict):
        for key in (IDENTITY_FIELD, CONNECTION_ID_FIELD, "data", "bytes"):
            if key in raw:
                raw = raw[key]
                break
    elif isinstance(raw, list) and len(raw) == 1 and not isinstance(raw[0], int):
        raw = raw[0]

    if isinstance(raw, (bytes, bytearray)):
        return raw.hex()
    if isinstance(raw, list) and all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        return "".join(f"{b:02x}" for b in raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return f"{raw:064x}"
    if isinstance(raw, str):
        text = raw.strip()
        return text[2:].lower() if text.lower().startswith("0x") else text
    return raw if raw is None else str(raw)


def _field_name(index: int, name: str | None) -> str:
    return name if name else f"field_{index}"


def _decode_product(raw: Any, type_: AlgebraicType) -> Any:
    if not type_.elements:
        return raw
    if isinstance(raw, (list, tuple)):
        return {
            _field_name(i, e.name): decode(raw[i] if i < len(raw) else None, e.type)
            for i, e in enumerate(type_.elements)
        }
    if isinstance(raw, dict):
        return {
            _field_name(i, e.name): decode(raw.get(_field_name(i, e.name)), e.type)
            for i, e in enumerate(type_.elements)
        }
    return raw


def _decode_sum(raw: Any, type_: AlgebraicType) -> Any:
    tag: Any = None
    value: Any = None
    if isinstance(raw, dict) and "tag" in raw:
        tag, value = raw["tag"], raw.get("value")
    elif isinstance(raw, (list, tuple)) and len(raw) == 2 and isinstance(raw[0], int):
        tag, value = raw
    elif isinstance(raw, dict) and "variant" in raw:
        # Already decoded
        return raw
    elif isinstance(raw, dict) and len(raw) == 1:
        # {"VariantName": value} or {"<tag>": value}
        ((name, value),) = raw.items()
        names = [e.name for e in type_.elements]
        if name in names:
            tag = names.index(name)
        elif isinstance(name, str) and name.isdigit():
            tag = int(name)
        else:
            return {"variant": name, "value": value}
    else:
        return raw

    if isinstance(tag, str) and tag.isdigit():
        tag = int(tag)
    variant = type_.elements[tag] if isinstance(tag, int) and 0 <= tag < len(type_.elements) else None
    if variant is None:
        return {"variant": f"Variant{tag}", "value": value}
    if variant.type.is_unit:
        return {"variant": _variant_name(tag, variant.name), "value": None}
    return {"variant": _variant_name(tag, variant.name), "value": decode(value, variant.type)}


def _variant_name(tag: int, name: str | None) -> str:
    return name if name else f"Variant{tag}"


def _decode_array(raw: Any, type_: AlgebraicType) -> Any:
    if not isinstance(raw, list) or type_.item is None:
        return raw
    return [decode(item, type_.item) for item in raw]


def _decode_option(raw: Any, type_: AlgebraicType) -> Any:
    if type_.item is None:
        return raw
    if isinstance(raw, dict) and len(raw) == 1:
        if "some" in raw:
            return decode(raw["some"], type_.item)
        if "none" in raw:
            return None
    return decode(raw, type_.item)


_DECODERS: dict[TypeKind, Callable[[Any, AlgebraicType], Any]] = {
    **{kind: _decode_int for kind in INTEGER_KINDS},
    **{kind: _decode_float for kind in FLOAT_KINDS},
    TypeKind.BOOL: _decode_bool,
    TypeKind.STRING: _decode_string,
    TypeKind.TIMESTAMP: _decode_timestamp,
    TypeKind.IDENTITY: _decode_identity,
    TypeKind.PRODUCT: _decode_product,
    TypeKind.SUM: _decode_sum,
    TypeKind.ARRAY: _decode_array,
    TypeKind.OPTION: _decode_option,
}


def decode(raw: Any, type_: AlgebraicType | None) -> Any:
    """Convert a raw wire value into a native value according to its type.

    Args:
        raw: Value as it arrived in the JSON response
        type_: Declared type from the schema; ``None`` means no schema is
            available and the value passes through

    Returns:
        The native value, or ``raw`` unchanged when its shape does not match
    """
    if raw is None:
        return None
    if type_ is None:
        return raw
    handler = _DECODERS.get(type_.kind)
    if handler is None:
        return raw
    try:
        return handler(raw, type_)
    except (TypeError, ValueError, OverflowError, IndexError, KeyError) as e:
        logger.debug(f"Passing through {type_.render()} value {raw!r}: {e}")
        return raw


def decode_row(raw_row: Any, table: TableSchema | None) -> Any:
    """Decode one row against a table's columns.

    Reads the row positionally (list) or by column name (dict) and returns a
    dict keyed by column name in schema order. Without a table schema the row
    is returned unchanged.
    """
    if table is None or not table.columns:
        return raw_row
    if isinstance(raw_row, (list, tuple)):
        return {
            c.name: decode(raw_row[i] if i < len(raw_row) else None, c.type)
            for i, c in enumerate(table.columns)
        }
    if isinstance(raw_row, dict):
        return {c.name: decode(raw_row.get(c.name), c.type) for c in table.columns}
    return raw_row


def decode_rows(rows: list[Any], table: TableSchema | None) -> list[Any]:
    return [decode_row(row, table) for row in rows]
