"""Schema models built from the server's module definition document.

The schema endpoint returns a versioned module definition (``RawModuleDefV9``):
a typespace of SATS types plus tables that reference product types in it, and
reducers with their parameter lists. These dataclasses are the parsed,
immutable view the rest of the bridge works with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from spacetimedb_mcp.schema.algebraic import AlgebraicType, TypeKind, option_value, parse_type

# Reducer lifecycle tags -> names exposed to callers
_LIFECYCLE_NAMES = {
    "init": "init",
    "onconnect": "on-connect",
    "clientconnected": "on-connect",
    "ondisconnect": "on-disconnect",
    "clientdisconnected": "on-disconnect",
}


def _unit_tag(wire: Any) -> str | None:
    """Read a unit-variant enum such as ``{"Public": []}`` as a lowercase tag."""
    wire = option_value(wire)
    if isinstance(wire, str):
        return wire.lower()
    if isinstance(wire, dict) and len(wire) == 1:
        return next(iter(wire)).lower()
    return None


@dataclass(frozen=True)
class ColumnSchema:
    """A single table column."""

    name: str
    type: AlgebraicType

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type.render()}


@dataclass(frozen=True)
class TableSchema:
    """A table and its ordered columns."""

    name: str
    columns: tuple[ColumnSchema, ...]
    primary_key: tuple[int, ...] = ()
    indexes: tuple[Any, ...] = ()
    constraints: tuple[Any, ...] = ()
    sequences: tuple[Any, ...] = ()
    table_type: str = "user"
    visibility: str = "public"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    @property
    def row_type(self) -> AlgebraicType:
        """The table's row as a product type."""
        return AlgebraicType.product([(c.name, c.type) for c in self.columns])

    def get_column(self, name: str) -> ColumnSchema | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "primary_key": [self.columns[i].name for i in self.primary_key if i < len(self.columns)],
            "indexes": list(self.indexes),
            "constraints": list(self.constraints),
            "sequences": list(self.sequences),
            "table_type": self.table_type,
            "visibility": self.visibility,
        }


@dataclass(frozen=True)
class FunctionSchema:
    """A reducer: a named, server-side function invoked with positional arguments."""

    name: str
    params: tuple[ColumnSchema, ...] = ()
    lifecycle: str | None = None

    @property
    def signature(self) -> str:
        """Rendered parameter list, e.g. ``(name: string, age: u32)``."""
        return "(" + ", ".join(f"{p.name}: {p.type.render()}" for p in self.params) + ")"

    def to_dict(self, include_signature: bool = True) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "lifecycle": self.lifecycle}
        if include_signature:
            result["params"] = [p.to_dict() for p in self.params]
            result["signature"] = self.signature
        return result


@dataclass(frozen=True)
class Schema:
    """Parsed module definition. Immutable for the lifetime of a session."""

    tables: tuple[TableSchema, ...] = ()
    functions: tuple[FunctionSchema, ...] = ()
    typespace: tuple[AlgebraicType, ...] = ()
    version: int = 9
    _tables_by_name: dict[str, TableSchema] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _functions_by_name: dict[str, FunctionSchema] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._tables_by_name.update({t.name: t for t in self.tables})
        self._functions_by_name.update({f.name: f for f in self.functions})

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    @property
    def function_names(self) -> list[str]:
        return [f.name for f in self.functions]

    def get_table(self, name: str) -> TableSchema | None:
        """Look up a table; ``None`` means "no schema available", not an error."""
        return self._tables_by_name.get(name)

    def get_function(self, name: str) -> FunctionSchema | None:
        return self._functions_by_name.get(name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "version": self.version,
            "tables": [t.to_dict() for t in self.tables],
            "functions": [f.to_dict() for f in self.functions],
            "typespace_size": len(self.typespace),
        }

    @classmethod
    def from_module_def(cls, document: Any, version: int = 9) -> Schema:
        """Build a schema from a module definition document.

        Accepts the bare ``RawModuleDefV9`` object or one wrapped as
        ``{"V9": {...}}`` (the form ``spacetime describe --json`` prints).

        Raises:
            ValueError: If the document is not a module definition
        """
        if isinstance(document, dict) and set(document) == {"V9"}:
            document = document["V9"]
        if not isinstance(document, dict):
            raise ValueError(f"Expected a JSON object, got {type(document).__name__}")
        if "tables" not in document:
            raise ValueError("Module definition has no 'tables' entry")

        typespace_wire = document.get("typespace") or {}
        raw_types = (
            typespace_wire.get("types", []) if isinstance(typespace_wire, dict) else typespace_wire
        )
        if not isinstance(raw_types, list):
            raise ValueError("Module definition typespace must be a list of types")
        typespace = tuple(parse_type(t, raw_types) for t in raw_types)

        tables = tuple(_parse_table(t, raw_types) for t in document.get("tables") or [])
        functions = tuple(_parse_reducer(r, raw_types) for r in document.get("reducers") or [])
        return cls(tables=tables, functions=functions, typespace=typespace, version=version)


def _columns_from_product(row_type: AlgebraicType, table_name: str) -> tuple[ColumnSchema, ...]:
    if row_type.kind != TypeKind.PRODUCT:
        raise ValueError(f"Table '{table_name}' row type is not a product type")
    return tuple(
        ColumnSchema(name=e.name or f"field_{i}", type=e.type)
        for i, e in enumerate(row_type.elements)
    )


def _parse_table(wire: Any, raw_types: list[Any]) -> TableSchema:
    if not isinstance(wire, dict) or "name" not in wire:
        raise ValueError(f"Malformed table definition: {wire!r}")
    name = str(wire["name"])

    if "product_type_ref" in wire:
        row_type = parse_type({"Ref": wire["product_type_ref"]}, raw_types)
        columns = _columns_from_product(row_type, name)
    else:
        columns = tuple(
            ColumnSchema(name=str(c["name"]), type=parse_type(c.get("type"), raw_types))
            for c in wire.get("columns") or []
        )

    access = _unit_tag(wire.get("table_access", wire.get("visibility")))
    return TableSchema(
        name=name,
        columns=columns,
        primary_key=tuple(wire.get("primary_key") or ()),
        indexes=tuple(wire.get("indexes") or ()),
        constraints=tuple(wire.get("constraints") or ()),
        sequences=tuple(wire.get("sequences") or ()),
        table_type=_unit_tag(wire.get("table_type")) or "user",
        visibility="private" if access == "private" else "public",
    )


def _parse_reducer(wire: Any, raw_types: list[Any]) -> FunctionSchema:
    if not isinstance(wire, dict) or "name" not in wire:
        raise ValueError(f"Malformed reducer definition: {wire!r}")
    params_type = parse_type({"Product": wire.get("params") or {"elements": []}}, raw_types)
    params = tuple(
        ColumnSchema(name=e.name or f"arg_{i}", type=e.type)
        for i, e in enumerate(params_type.elements)
    )
    lifecycle = _unit_tag(wire.get("lifecycle"))
    return FunctionSchema(
        name=str(wire["name"]),
        params=params,
        lifecycle=_LIFECYCLE_NAMES.get(lifecycle, lifecycle) if lifecycle else None,
    )
