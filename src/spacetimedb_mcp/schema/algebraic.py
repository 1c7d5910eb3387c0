"""AlgebraicType: the self-describing type descriptors found in a module schema.

The server describes every column and reducer parameter with a SATS type in
its JSON form, e.g. ``{"U64": []}``, ``{"Array": {"String": []}}`` or
``{"Ref": 3}``. This module turns those into a closed set of
:class:`AlgebraicType` values that the decoder can dispatch over.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Special single-field products the server uses for well-known types
IDENTITY_FIELD = "__identity__"
CONNECTION_ID_FIELD = "__connection_id__"
TIMESTAMP_FIELD = "__timestamp_micros_since_unix_epoch__"

MAX_DEPTH = 64


class TypeKind(StrEnum):
    """Every kind of type the decoder understands."""

    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    I128 = "i128"
    I256 = "i256"
    F32 = "f32"
    F64 = "f64"
    BOOL = "bool"
    STRING = "string"
    TIMESTAMP = "timestamp"
    IDENTITY = "identity"
    PRODUCT = "product"
    SUM = "sum"
    ARRAY = "array"
    OPTION = "option"
    UNKNOWN = "unknown"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid type kind values."""
        return [k.value for k in cls]


INTEGER_KINDS = frozenset(
    {
        TypeKind.U8,
        TypeKind.U16,
        TypeKind.U32,
        TypeKind.U64,
        TypeKind.U128,
        TypeKind.U256,
        TypeKind.I8,
        TypeKind.I16,
        TypeKind.I32,
        TypeKind.I64,
        TypeKind.I128,
        TypeKind.I256,
    }
)
FLOAT_KINDS = frozenset({TypeKind.F32, TypeKind.F64})
PRIMITIVE_KINDS = INTEGER_KINDS | FLOAT_KINDS | {
    TypeKind.BOOL,
    TypeKind.STRING,
    TypeKind.TIMESTAMP,
    TypeKind.IDENTITY,
}

# Wire tag ("U64", "String", ...) or compact name ("u64", "string", ...) -> kind
_PRIMITIVE_NAMES: dict[str, TypeKind] = {k.value: k for k in PRIMITIVE_KINDS}
_PRIMITIVE_NAMES["connection_id"] = TypeKind.IDENTITY
_PRIMITIVE_NAMES["str"] = TypeKind.STRING


@dataclass(frozen=True)
class TypeElement:
    """A named product field or sum variant."""

    name: str | None
    type: AlgebraicType


@dataclass(frozen=True)
class AlgebraicType:
    """A decoded type descriptor.

    ``elements`` holds product fields or sum variants, ``item`` holds the
    element type of an array or the inner type of an option. ``raw`` keeps the
    wire form of types we do not recognize.
    """

    kind: TypeKind
    elements: tuple[TypeElement, ...] = ()
    item: AlgebraicType | None = None
    raw: Any = field(default=None, compare=False)

    @classmethod
    def primitive(cls, kind: TypeKind | str) -> AlgebraicType:
        return cls(TypeKind(kind))

    @classmethod
    def product(cls, fields: Sequence[tuple[str | None, AlgebraicType]]) -> AlgebraicType:
        return cls(TypeKind.PRODUCT, elements=tuple(TypeElement(n, t) for n, t in fields))

    @classmethod
    def sum(cls, variants: Sequence[tuple[str | None, AlgebraicType]]) -> AlgebraicType:
        return cls(TypeKind.SUM, elements=tuple(TypeElement(n, t) for n, t in variants))

    @classmethod
    def array(cls, item: AlgebraicType) -> AlgebraicType:
        return cls(TypeKind.ARRAY, item=item)

    @classmethod
    def option(cls, inner: AlgebraicType) -> AlgebraicType:
        return cls(TypeKind.OPTION, item=inner)

    @classmethod
    def unknown(cls, raw: Any = None) -> AlgebraicType:
        return cls(TypeKind.UNKNOWN, raw=raw)

    @property
    def is_unit(self) -> bool:
        """True for the empty product, used as the payload of plain enum variants."""
        return self.kind == TypeKind.PRODUCT and not self.elements

    def render(self) -> str:
        """Human-readable type name, e.g. ``Array<string>`` or ``Option<u64>``."""
        if self.kind in PRIMITIVE_KINDS:
            return self.kind.value
        if self.kind == TypeKind.ARRAY:
            return f"Array<{self.item.render() if self.item else '?'}>"
        if self.kind == TypeKind.OPTION:
            return f"Option<{self.item.render() if self.item else '?'}>"
        if self.kind == TypeKind.PRODUCT:
            inner = ", ".join(
                f"{e.name or f'field_{i}'}: {e.type.render()}" for i, e in enumerate(self.elements)
            )
            return f"({inner})"
        if self.kind == TypeKind.SUM:
            inner = " | ".join(e.name or f"Variant{i}" for i, e in enumerate(self.elements))
            return f"enum {{ {inner} }}"
        return "unknown"


def option_value(wire: Any) -> Any:
    """Unwrap the server's ``{"some": x}`` / ``{"none": []}`` JSON encoding.

    Plain values pass through unchanged.
    """
    if isinstance(wire, dict) and len(wire) == 1:
        if "some" in wire:
            return wire["some"]
        if "none" in wire:
            return None
    return wire


def _single_tag(wire: dict[str, Any]) -> tuple[str, Any] | None:
    if len(wire) != 1:
        return None
    ((tag, payload),) = wire.items()
    return tag, payload


def _parse_elements(
    elements: Any,
    typespace: Sequence[Any] | None,
    depth: int,
) -> list[tuple[str | None, AlgebraicType]]:
    if not isinstance(elements, list):
        raise ValueError(f"Expected a list of elements, got {type(elements).__name__}")
    parsed: list[tuple[str | None, AlgebraicType]] = []
    for element in elements:
        if not isinstance(element, dict):
            raise ValueError(f"Malformed type element: {element!r}")
        name = option_value(element.get("name"))
        element_type = element.get("algebraic_type", element.get("type"))
        parsed.append(
            (str(name) if name is not None else None, parse_type(element_type, typespace, depth + 1))
        )
    return parsed


def parse_type(
    wire: Any,
    typespace: Sequence[Any] | None = None,
    _depth: int = 0,
) -> AlgebraicType:
    """Parse a SATS JSON type descriptor into an :class:`AlgebraicType`.

    Understands the tagged JSON form (``{"U32": []}``, ``{"Product": {...}}``,
    ``{"Ref": n}``...) and compact names (``"u32"``, ``"string"``). References
    are resolved against ``typespace``. Recognizes the server's identity,
    connection id and timestamp wrappers, and the ``some``/``none`` sum as an
    option.

    Unrecognized descriptors become ``TypeKind.UNKNOWN`` so the decoder can
    pass their values through.

    Raises:
        ValueError: If a product or sum carries a malformed element list
    """
    if _depth > MAX_DEPTH:
        return AlgebraicType.unknown(wire)

    if isinstance(wire, AlgebraicType):
        return wire

    if isinstance(wire, str):
        kind = _PRIMITIVE_NAMES.get(wire.lower())
        return AlgebraicType(kind) if kind else AlgebraicType.unknown(wire)

    if not isinstance(wire, dict):
        return AlgebraicType.unknown(wire)

    tagged = _single_tag(wire)
    if tagged is None:
        return AlgebraicType.unknown(wire)
    tag, payload = tagged
    lowered = tag.lower()

    if lowered in _PRIMITIVE_NAMES:
        return AlgebraicType(_PRIMITIVE_NAMES[lowered])

    if lowered == "ref":
        if typespace is None or not isinstance(payload, int) or not 0 <= payload < len(typespace):
            return AlgebraicType.unknown(wire)
        return parse_type(typespace[payload], typespace, _depth + 1)

    if lowered == "array":
        return AlgebraicType.array(parse_type(payload, typespace, _depth + 1))

    if lowered == "option":
        return AlgebraicType.option(parse_type(payload, typespace, _depth + 1))

    if lowered == "product":
        elements = payload.get("elements") if isinstance(payload, dict) else payload
        fields = _parse_elements(elements, typespace, _depth)
        if len(fields) == 1:
            name = fields[0][0]
            if name in (IDENTITY_FIELD, CONNECTION_ID_FIELD):
                return AlgebraicType(TypeKind.IDENTITY)
            if name == TIMESTAMP_FIELD:
                return AlgebraicType(TypeKind.TIMESTAMP)
        return AlgebraicType.product(fields)

    if lowered == "sum":
        variants_wire = payload.get("variants") if isinstance(payload, dict) else payload
        variants = _parse_elements(variants_wire, typespace, _depth)
        if (
            len(variants) == 2
            and variants[0][0] == "some"
            and variants[1][0] == "none"
            and variants[1][1].is_unit
        ):
            return AlgebraicType.option(variants[0][1])
        return AlgebraicType.sum(variants)

    return AlgebraicType.unknown(wire)
