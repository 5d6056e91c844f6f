"""IDL type grammar and named-type resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Tuple, Union

from .constants import PRIMITIVE_ALIASES

if TYPE_CHECKING:
    from .idl import Idl


@dataclass(frozen=True)
class Primitive:
    name: str


@dataclass(frozen=True)
class Vector:
    inner: "IdlType"


@dataclass(frozen=True)
class Option:
    inner: "IdlType"


@dataclass(frozen=True)
class FixedArray:
    inner: "IdlType"
    size: int


@dataclass(frozen=True)
class Defined:
    name: str


@dataclass(frozen=True)
class Unknown:
    raw: Any


IdlType = Union[Primitive, Vector, Option, FixedArray, Defined, Unknown]
_PARSED = (Primitive, Vector, Option, FixedArray, Defined, Unknown)


@dataclass(frozen=True)
class Field:
    name: str
    type: IdlType


@dataclass(frozen=True)
class StructDef:
    name: str
    # Named fields, or positional types for a tuple struct.
    fields: Tuple[Union[Field, IdlType], ...]

    @property
    def is_tuple(self) -> bool:
        return any(not isinstance(f, Field) for f in self.fields)


@dataclass(frozen=True)
class Variant:
    name: str
    fields: Optional[Tuple[Union[Field, IdlType], ...]] = None

    @property
    def is_unit(self) -> bool:
        return not self.fields

    @property
    def is_tuple(self) -> bool:
        return bool(self.fields) and not isinstance(self.fields[0], Field)


@dataclass(frozen=True)
class EnumDef:
    name: str
    variants: Tuple[Variant, ...]

    def variant_names(self) -> list[str]:
        return [v.name for v in self.variants]


@dataclass(frozen=True)
class AliasDef:
    name: str
    target: IdlType


TypeDefinition = Union[StructDef, EnumDef, AliasDef]


def _defined_name(raw: Any) -> Optional[str]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("name"), str):
        return raw["name"]
    return None


def classify(raw: Any) -> IdlType:
    """Parse a raw IDL type into the closed grammar.

    Total: shapes that are not recognised come back as :class:`Unknown`.
    Already-parsed types are returned unchanged.
    """
    if isinstance(raw, _PARSED):
        return raw
    if isinstance(raw, str):
        return Primitive(PRIMITIVE_ALIASES.get(raw, raw))
    if not isinstance(raw, dict) or len(raw) != 1:
        return Unknown(raw)

    (key, inner), = raw.items()
    if key == "vec":
        return Vector(classify(inner))
    if key in ("option", "coption"):
        return Option(classify(inner))
    if key == "array":
        if isinstance(inner, (list, tuple)) and len(inner) == 2:
            size = inner[1]
            if isinstance(size, int) and not isinstance(size, bool) and size >= 0:
                return FixedArray(classify(inner[0]), size)
        return Unknown(raw)
    if key == "defined":
        name = _defined_name(inner)
        if name is not None:
            return Defined(name)
    return Unknown(raw)


def resolve(idl: "Idl", type_or_name: Union[IdlType, str, Any]) -> Optional[TypeDefinition]:
    if isinstance(type_or_name, str):
        name = type_or_name
    else:
        parsed = classify(type_or_name)
        if not isinstance(parsed, Defined):
            return None
        name = parsed.name
    return idl.types.get(name)


def resolve_alias(idl: "Idl", type_: IdlType) -> IdlType:
    """Follow ``type`` aliases until a non-alias type is reached."""
    seen = set()
    current = classify(type_)
    while isinstance(current, Defined) and current.name not in seen:
        seen.add(current.name)
        definition = idl.types.get(current.name)
        if not isinstance(definition, AliasDef):
            break
        current = definition.target
    return current


def enum_variants(idl: "Idl", type_: Any) -> Optional[Tuple[Variant, ...]]:
    definition = resolve(idl, resolve_alias(idl, classify(type_)))
    if isinstance(definition, EnumDef):
        return definition.variants
    return None


def struct_fields(idl: "Idl", type_: Any) -> Optional[Tuple[Union[Field, IdlType], ...]]:
    definition = resolve(idl, resolve_alias(idl, classify(type_)))
    if isinstance(definition, StructDef):
        return definition.fields
    return None


def type_kind(idl: "Idl", type_: Any) -> str:
    parsed = classify(type_)
    if isinstance(parsed, Primitive):
        return "primitive"
    if isinstance(parsed, Vector):
        return "vec"
    if isinstance(parsed, Option):
        return "option"
    if isinstance(parsed, FixedArray):
        return "array"
    if isinstance(parsed, Defined):
        definition = idl.types.get(parsed.name)
        if isinstance(definition, StructDef):
            return "struct"
        if isinstance(definition, EnumDef):
            return "enum"
        if isinstance(definition, AliasDef):
            return "alias"
        return "defined"
    return "unknown"


def is_nested(idl: "Idl", type_: Any) -> bool:
    parsed = resolve_alias(idl, classify(type_))
    if isinstance(parsed, Defined):
        return isinstance(idl.types.get(parsed.name), (StructDef, EnumDef))
    if isinstance(parsed, (Vector, Option, FixedArray)):
        return is_nested(idl, parsed.inner)
    return False


def display_name(idl: Optional["Idl"], type_: Any) -> str:
    parsed = classify(type_)
    if isinstance(parsed, Primitive):
        return parsed.name
    if isinstance(parsed, Vector):
        return f"Vec<{display_name(idl, parsed.inner)}>"
    if isinstance(parsed, Option):
        return f"Option<{display_name(idl, parsed.inner)}>"
    if isinstance(parsed, FixedArray):
        return f"[{display_name(idl, parsed.inner)}; {parsed.size}]"
    if isinstance(parsed, Defined):
        definition = idl.types.get(parsed.name) if idl is not None else None
        if isinstance(definition, EnumDef):
            return f"enum {parsed.name}"
        if isinstance(definition, StructDef):
            return f"struct {parsed.name}"
        return parsed.name
    return "unknown"
