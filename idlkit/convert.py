"""Conversion of loosely-typed input into wire-ready values."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from solders.pubkey import Pubkey

from .constants import FLOAT_TYPES, INTEGER_WIDTHS, MAX_SAFE_INTEGER, PUBKEY_LEN, integer_bounds
from .errors import IdlKitError, MissingInputError, SchemaError, TypeMismatchError
from .idl import Idl, Instruction
from .schema import (
    AliasDef,
    Defined,
    EnumDef,
    Field,
    FixedArray,
    IdlType,
    Option,
    Primitive,
    StructDef,
    Variant,
    Vector,
    classify,
)
from .util import find_by_name, is_blank, lookup_field, to_camel_case


_INCOMPLETE_EXPONENT_RE = re.compile(r"[eE][+-]?$")


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _parse_json_text(value: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


def _convert_child(value: Any, type_: IdlType, idl: Optional[Idl], segment: str) -> Any:
    try:
        return _convert(value, type_, idl)
    except IdlKitError as exc:
        raise exc.at(segment)


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def parse_integer(value: Any, type_name: str) -> int:
    if isinstance(value, bool):
        raise TypeMismatchError(f"Cannot convert boolean to {type_name}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise TypeMismatchError(f"Invalid {type_name}: expected integer, got {value}")
        if abs(value) > MAX_SAFE_INTEGER:
            raise TypeMismatchError(f"Invalid {type_name}: {value} exceeds the safe integer range; pass it as a string")
        result = int(value)
    elif isinstance(value, str):
        result = _parse_integer_text(value, type_name)
    else:
        raise TypeMismatchError(f"Cannot convert {_describe(value)} to {type_name}")

    low, high = integer_bounds(type_name)
    if result < low or result > high:
        raise TypeMismatchError(f"Invalid {type_name}: value {result} is out of range ({low}-{high})")
    return result


def _parse_integer_text(value: str, type_name: str) -> int:
    text = value.strip()
    if text in ("", "-", "+"):
        raise TypeMismatchError(f'Invalid {type_name}: empty or incomplete number "{value}"')
    if _INCOMPLETE_EXPONENT_RE.search(text):
        raise TypeMismatchError(f'Invalid {type_name}: "{value}" appears to be incomplete scientific notation')

    if "_" in text:
        raise TypeMismatchError(f'Invalid {type_name}: "{value}" is not a valid number')

    body = text.lstrip("+-")
    if body.lower().startswith("0x"):
        try:
            return int(text, 16)
        except ValueError as exc:
            raise TypeMismatchError(f'Invalid {type_name}: "{value}" is not a valid number') from exc
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        number = Decimal(text)
    except InvalidOperation as exc:
        raise TypeMismatchError(f'Invalid {type_name}: "{value}" is not a valid number') from exc
    if not number.is_finite():
        raise TypeMismatchError(f'Invalid {type_name}: "{value}" is not a valid number')
    # Range check on the Decimal; int() of a huge exponent never returns.
    low, high = integer_bounds(type_name)
    if number < low or number > high:
        raise TypeMismatchError(f'Invalid {type_name}: value "{value}" is out of range ({low}-{high})')
    if number != number.to_integral_value():
        raise TypeMismatchError(f'Invalid {type_name}: expected integer, got "{value}"')
    return int(number)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    return bool(value)


def parse_pubkey(value: Any) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except ValueError as exc:
            raise TypeMismatchError(f'Invalid pubkey: "{value}" is not a valid address') from exc
    if isinstance(value, (bytes, bytearray)) and len(value) == PUBKEY_LEN:
        return Pubkey.from_bytes(bytes(value))
    raise TypeMismatchError(f"Cannot convert {_describe(value)} to pubkey")


def _byte_list(items: Sequence[Any]) -> bytes:
    for idx, item in enumerate(items):
        if isinstance(item, bool) or not isinstance(item, int) or not 0 <= item <= 255:
            raise TypeMismatchError(f"Invalid bytes: element {idx} is not a byte (0-255)")
    return bytes(items)


def parse_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, (list, tuple)):
        return _byte_list(value)
    if isinstance(value, str):
        parsed = _parse_json_text(value)
        if isinstance(parsed, list):
            return _byte_list(parsed)
        return value.encode("utf-8")
    raise TypeMismatchError(f"Cannot convert {_describe(value)} to bytes")


def parse_float(value: Any, type_name: str) -> float:
    if isinstance(value, bool):
        raise TypeMismatchError(f"Cannot convert boolean to {type_name}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise TypeMismatchError(f'Invalid {type_name}: "{value}" is not a valid number') from exc
    raise TypeMismatchError(f"Cannot convert {_describe(value)} to {type_name}")


def _convert_primitive(value: Any, name: str) -> Any:
    if name in INTEGER_WIDTHS:
        return parse_integer(value, name)
    if name in FLOAT_TYPES:
        return parse_float(value, name)
    if name == "bool":
        return parse_bool(value)
    if name == "string":
        return value if isinstance(value, str) else str(value)
    if name == "pubkey":
        return parse_pubkey(value)
    if name == "bytes":
        return parse_bytes(value)
    return value


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------


def _as_list(value: Any, what: str) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        parsed = _parse_json_text(value)
        if isinstance(parsed, list):
            return parsed
    raise TypeMismatchError(f"Expected array for {what} type, got {_describe(value)}")


def _as_object(value: Any, what: str) -> Mapping[str, Any]:
    if isinstance(value, str):
        parsed = _parse_json_text(value)
        if not isinstance(parsed, dict):
            raise TypeMismatchError(f"Invalid value for {what}: expected object, got non-JSON string")
        return parsed
    if not isinstance(value, Mapping):
        raise TypeMismatchError(f"Invalid value for {what}: expected object, got {_describe(value)}")
    return value


def _convert_positional(items: List[Any], types: Sequence[Any], idl: Optional[Idl], what: str) -> List[Any]:
    if len(items) != len(types):
        raise TypeMismatchError(f"Expected {len(types)} values for {what}, got {len(items)}")
    return [_convert_child(item, t, idl, f"[{i}]") for i, (item, t) in enumerate(zip(items, types))]


def _convert_named(
    value: Mapping[str, Any],
    fields: Sequence[Field],
    idl: Optional[Idl],
    what: str,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    missing: List[str] = []
    for f in fields:
        found, raw = lookup_field(value, f.name)
        optional = isinstance(f.type, Option)
        if is_blank(raw) and not optional:
            missing.append(f.name)
            continue
        result[f.name] = _convert_child(raw if found else None, f.type, idl, f.name)
    if missing:
        raise MissingInputError(f"Missing required fields in {what}: {', '.join(missing)}", missing=missing)
    return result


def _convert_struct(value: Any, definition: StructDef, idl: Optional[Idl]) -> Any:
    what = f'struct "{definition.name}"'
    if definition.is_tuple:
        return _convert_positional(_as_list(value, what), definition.fields, idl, what)
    return _convert_named(_as_object(value, what), definition.fields, idl, what)


def _match_variant(definition: EnumDef, key: str) -> Variant:
    variant = find_by_name(definition.variants, key)
    if variant is None:
        raise TypeMismatchError(
            f'Unknown enum variant "{key}" for type {definition.name}. '
            f"Available: {', '.join(definition.variant_names())}"
        )
    return variant


def _convert_variant_payload(payload: Any, variant: Variant, idl: Optional[Idl]) -> Any:
    if variant.is_unit:
        return {}
    if is_blank(payload):
        raise MissingInputError(f"Enum variant {variant.name} requires a payload", missing=[variant.name])
    fields = variant.fields or ()
    what = f"variant {variant.name}"
    if variant.is_tuple:
        if isinstance(payload, (list, tuple)):
            return _convert_positional(list(payload), fields, idl, what)
        if len(fields) == 1:
            return [_convert_child(payload, fields[0], idl, "[0]")]
        return _convert_positional(_as_list(payload, what), fields, idl, what)
    if isinstance(payload, Mapping) or isinstance(payload, str):
        return _convert_named(_as_object(payload, what), fields, idl, what)
    if len(fields) == 1:
        only = fields[0]
        return {only.name: _convert_child(payload, only.type, idl, only.name)}
    raise TypeMismatchError(f"Invalid payload for {what}: expected object, got {_describe(payload)}")


def _convert_enum(value: Any, definition: EnumDef, idl: Optional[Idl]) -> Dict[str, Any]:
    if isinstance(value, str):
        parsed = _parse_json_text(value)
        if isinstance(parsed, dict):
            value = parsed
        else:
            variant = _match_variant(definition, value.strip())
            return {to_camel_case(variant.name): {}}

    if isinstance(value, Mapping) and len(value) == 1:
        (key, payload), = value.items()
        variant = _match_variant(definition, str(key))
        canonical = to_camel_case(variant.name)
        try:
            return {canonical: _convert_variant_payload(payload, variant, idl)}
        except IdlKitError as exc:
            raise exc.at(variant.name)

    raise TypeMismatchError(
        f"Invalid enum value for type {definition.name}: {value!r}. "
        'Expected string or object like {"VariantName": {}}'
    )


def _convert_defined(value: Any, type_: Defined, idl: Optional[Idl]) -> Any:
    if idl is None:
        return value
    definition = idl.types.get(type_.name)
    if definition is None:
        raise SchemaError(f"Type {type_.name} is not defined in the IDL")
    if isinstance(definition, EnumDef):
        return _convert_enum(value, definition, idl)
    if isinstance(definition, StructDef):
        return _convert_struct(value, definition, idl)
    if isinstance(definition, AliasDef):
        return _convert(value, definition.target, idl)
    return value


def _convert(value: Any, type_: IdlType, idl: Optional[Idl]) -> Any:
    if isinstance(type_, Option):
        if is_blank(value):
            return None
        return _convert(value, type_.inner, idl)

    if value is None:
        raise MissingInputError("Value is required")

    if isinstance(type_, Vector):
        items = _as_list(value, "Vec")
        return [_convert_child(item, type_.inner, idl, f"[{i}]") for i, item in enumerate(items)]

    if isinstance(type_, FixedArray):
        items = _as_list(value, "Array")
        if len(items) != type_.size:
            raise TypeMismatchError(f"Expected array of size {type_.size}, got {len(items)}")
        return [_convert_child(item, type_.inner, idl, f"[{i}]") for i, item in enumerate(items)]

    if isinstance(type_, Defined):
        return _convert_defined(value, type_, idl)

    if isinstance(type_, Primitive):
        return _convert_primitive(value, type_.name)

    # Unknown shapes pass through untouched
    return value


def to_wire_value(value: Any, type_: Any, idl: Optional[Idl] = None, name: Optional[str] = None) -> Any:
    """Coerce raw input into the value the instruction coder expects for ``type_``.

    ``name`` is used as the root of the error path.
    """
    try:
        return _convert(value, classify(type_), idl)
    except IdlKitError as exc:
        raise exc.at(name)


def convert_args(instruction: Instruction, values: Mapping[str, Any], idl: Optional[Idl] = None) -> Dict[str, Any]:
    """Convert every declared argument of ``instruction``.

    Absent required arguments are reported together in one error.
    """
    missing = [
        a.name
        for a in instruction.args
        if not isinstance(a.type, Option) and is_blank(lookup_field(values, a.name)[1])
    ]
    if missing:
        raise MissingInputError(
            f"Missing required arguments for {instruction.name}: {', '.join(missing)}",
            missing=missing,
        )
    out: Dict[str, Any] = {}
    for a in instruction.args:
        out[a.name] = to_wire_value(lookup_field(values, a.name)[1], a.type, idl, name=a.name)
    return out
