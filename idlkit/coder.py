"""Borsh account decoding against an IDL's type table.

Layouts are assembled from the parsed :class:`~idlkit.idl.Idl` with
``borsh_construct`` and anchorpy's ``BorshPubkey``, the same building blocks
anchorpy's own IDL coders use. Decoded structs come back as ``construct``
containers, which read as mappings, so the derivation engine can walk them
like any other decoded account.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Sequence, Tuple, Union

from anchorpy.borsh_extension import BorshPubkey
from borsh_construct import (
    F32,
    F64,
    I8,
    I16,
    I32,
    I64,
    I128,
    U8,
    U16,
    U32,
    U64,
    U128,
    Bool,
    Bytes,
    CStruct,
    Enum,
    String,
    TupleStruct,
    Vec,
)
from borsh_construct import Option as BorshOption

from .errors import ResolutionError, SchemaError
from .idl import Idl
from .schema import AliasDef, Defined, Field, FixedArray, IdlType, Option, Primitive, StructDef, Vector, resolve
from .util import find_by_name

logger = logging.getLogger(__name__)

_PRIMITIVE_LAYOUTS = {
    "bool": Bool,
    "u8": U8,
    "i8": I8,
    "u16": U16,
    "i16": I16,
    "u32": U32,
    "i32": I32,
    "u64": U64,
    "i64": I64,
    "u128": U128,
    "i128": I128,
    "f32": F32,
    "f64": F64,
    "string": String,
    "bytes": Bytes,
    "pubkey": BorshPubkey,
}


def account_discriminator(name: str) -> bytes:
    """Default Anchor discriminator for IDLs that do not declare one."""
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:8]


class AccountCoder:
    """``decode(type_name, data)`` collaborator for :func:`derive_account_pda`.

    ``data`` is the raw account data: discriminator first, then the Borsh
    body of the named account type.
    """

    def __init__(self, idl: Idl) -> None:
        self.idl = idl
        self._layouts: Dict[str, Any] = {}

    def discriminator(self, name: str) -> bytes:
        declared = self.idl.discriminators.get(name)
        return declared if declared is not None else account_discriminator(name)

    def layout(self, name: str) -> Any:
        if name not in self._layouts:
            self._layouts[name] = self._defined_layout(name, ())
        return self._layouts[name]

    def decode(self, type_name: str, data: bytes) -> Any:
        name = find_by_name(self.idl.accounts, type_name, key=lambda n: n)
        if name is None:
            raise SchemaError(f"Unknown account type: {type_name}")
        expected = self.discriminator(name)
        if bytes(data[: len(expected)]) != expected:
            raise ResolutionError(f"Account data does not start with the {name} discriminator")
        logger.debug("Decoding %d bytes as %s", len(data), name)
        return self.layout(name).parse(bytes(data[len(expected) :]))

    __call__ = decode

    def _type_layout(self, type_: IdlType, stack: Tuple[str, ...]) -> Any:
        if isinstance(type_, Primitive):
            layout = _PRIMITIVE_LAYOUTS.get(type_.name)
            if layout is None:
                raise SchemaError(f"Cannot decode type {type_.name}")
            return layout
        if isinstance(type_, Vector):
            return Vec(self._type_layout(type_.inner, stack))
        if isinstance(type_, Option):
            return BorshOption(self._type_layout(type_.inner, stack))
        if isinstance(type_, FixedArray):
            return self._type_layout(type_.inner, stack)[type_.size]
        if isinstance(type_, Defined):
            return self._defined_layout(type_.name, stack)
        raise SchemaError(f"Cannot decode type {type_.raw!r}")

    def _defined_layout(self, name: str, stack: Tuple[str, ...]) -> Any:
        if name in stack:
            raise SchemaError(f"Cannot decode recursive type {name}")
        definition = resolve(self.idl, name)
        if definition is None:
            raise SchemaError(f"Undefined type: {name}")
        inner = stack + (name,)
        if isinstance(definition, AliasDef):
            return self._type_layout(definition.target, inner)
        if isinstance(definition, StructDef):
            return self._fields_layout(definition.fields, inner)
        variants = []
        for variant in definition.variants:
            if variant.is_unit:
                variants.append(variant.name)
            else:
                variants.append(variant.name / self._fields_layout(variant.fields, inner))
        return Enum(*variants, enum_name=definition.name)

    def _fields_layout(self, fields: Sequence[Union[Field, IdlType]], stack: Tuple[str, ...]) -> Any:
        if any(not isinstance(f, Field) for f in fields):
            return TupleStruct(*(self._type_layout(f.type if isinstance(f, Field) else f, stack) for f in fields))
        return CStruct(*(f.name / self._type_layout(f.type, stack) for f in fields))
