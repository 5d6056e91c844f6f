"""Seed byte packing for primitive leaf values."""

from __future__ import annotations

from typing import Any

from solders.pubkey import Pubkey

from .constants import INTEGER_WIDTHS, SEED_INTEGER_WIDTHS
from .convert import parse_integer, parse_pubkey
from .errors import TypeMismatchError
from .schema import Primitive, classify, display_name


def pack_integer(value: Any, type_name: str) -> bytes:
    width = SEED_INTEGER_WIDTHS[type_name]
    number = parse_integer(value, type_name)
    return number.to_bytes(width, "little", signed=type_name.startswith("i"))


def to_seed_bytes(value: Any, type_: Any) -> bytes:
    """Encode a primitive leaf as PDA seed bytes.

    Integers are little-endian at their declared width, strings UTF-8 and
    pubkeys their raw 32 bytes. Anything else cannot be a seed.
    """
    parsed = classify(type_)
    if isinstance(parsed, Primitive):
        name = parsed.name
        if name in SEED_INTEGER_WIDTHS:
            return pack_integer(value, name)
        if name == "string":
            if not isinstance(value, str):
                raise TypeMismatchError(f"Invalid string seed: got {type(value).__name__}")
            return value.encode("utf-8")
        if name == "pubkey":
            if isinstance(value, Pubkey):
                return bytes(value)
            return bytes(parse_pubkey(value))
        if name in INTEGER_WIDTHS:
            raise TypeMismatchError(f"Unsupported seed type: {name} (128-bit seeds are not supported)")
    raise TypeMismatchError(f"Unsupported seed type: {display_name(None, parsed)}")
