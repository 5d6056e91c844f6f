"""Form field and IDL document validation."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from solders.pubkey import Pubkey

from .constants import INTEGER_WIDTHS, PRIMITIVE_TYPES, SEED_KINDS, TYPE_DEF_KINDS, integer_bounds
from .errors import SchemaError
from .idl import Instruction
from .schema import Defined, FixedArray, Option, Primitive, Unknown, Vector, classify
from .util import lookup_field


def _is_address(value: Any) -> bool:
    if isinstance(value, Pubkey):
        return True
    try:
        Pubkey.from_string(str(value).strip())
    except ValueError:
        return False
    return True


def _as_integer(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            return None
    return None


def validate_field(name: str, value: Any, type_: Any = None) -> Optional[str]:
    """Return a human-readable problem with a single form value, or ``None``.

    Without a type the value is treated as an account address.
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return f"{name} is required"

    if type_ is None:
        if not _is_address(value):
            return f"{name} must be a valid address"
        return None

    parsed = classify(type_)
    if isinstance(parsed, Option):
        return None
    type_name = getattr(parsed, "name", None)
    if type_name in INTEGER_WIDTHS:
        low, high = integer_bounds(type_name)
        number = _as_integer(value)
        if number is None or number < low or number > high:
            return f"{name} must be a valid {type_name} ({low} to {high})"
    elif type_name == "bool":
        if not isinstance(value, bool) and value not in ("true", "false"):
            return f"{name} must be a valid boolean (true or false)"
    elif type_name == "pubkey":
        if not _is_address(value):
            return f"{name} must be a valid address"
    return None


def validate_args(instruction: Instruction, values: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    for arg in instruction.args:
        _, value = lookup_field(values, arg.name)
        if isinstance(arg.type, Option) and (value is None or value == ""):
            continue
        msg = validate_field(arg.name, value, arg.type)
        if msg:
            errors.append(msg)
    return errors


def _walk_defined(raw_type: Any) -> List[str]:
    parsed = classify(raw_type)
    names: List[str] = []
    while isinstance(parsed, (Vector, Option, FixedArray)):
        parsed = parsed.inner
    if isinstance(parsed, Defined):
        names.append(parsed.name)
    return names


def _is_known(raw_type: Any) -> bool:
    parsed = classify(raw_type)
    while isinstance(parsed, (Vector, Option, FixedArray)):
        parsed = parsed.inner
    if isinstance(parsed, Primitive):
        return parsed.name in PRIMITIVE_TYPES
    return not isinstance(parsed, Unknown)


def validate_idl(raw: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    def err(msg: str) -> None:
        errors.append(msg)

    if not isinstance(raw, dict):
        return ["IDL document must be a JSON object"]

    instructions = raw.get("instructions")
    if not isinstance(instructions, list):
        err("Missing required list: instructions")
        instructions = []

    types = raw.get("types", []) or []
    if not isinstance(types, list):
        err("types must be a list")
        types = []

    declared: set = set()
    referenced: List[tuple] = []

    for idx, item in enumerate(types):
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            err(f"types[{idx}] is missing a name")
            continue
        tname = item["name"]
        if tname in declared:
            err(f"Duplicate type definition: {tname}")
        declared.add(tname)
        body = item.get("type")
        kind = body.get("kind") if isinstance(body, dict) else None
        if kind not in TYPE_DEF_KINDS:
            err(f"Type {tname} has unsupported kind: {kind}")
            continue
        if kind == "struct":
            for field in body.get("fields", []) or []:
                ftype = field.get("type") if isinstance(field, dict) and "name" in field else field
                for ref in _walk_defined(ftype):
                    referenced.append((ref, f"type {tname}"))
                if not _is_known(ftype):
                    err(f"Type {tname} has a field with an unrecognised type")
        elif kind == "enum":
            variants = body.get("variants")
            if not isinstance(variants, list) or not variants:
                err(f"Enum {tname} must declare variants")
                continue
            seen = set()
            for variant in variants:
                vname = variant.get("name") if isinstance(variant, dict) else None
                if not isinstance(vname, str):
                    err(f"Enum {tname} has a variant without a name")
                    continue
                if vname in seen:
                    err(f"Enum {tname} has duplicate variant: {vname}")
                seen.add(vname)

    seen_ix = set()
    for idx, ix in enumerate(instructions):
        if not isinstance(ix, dict) or not isinstance(ix.get("name"), str):
            err(f"instructions[{idx}] is missing a name")
            continue
        ix_name = ix["name"]
        if ix_name in seen_ix:
            err(f"Duplicate instruction: {ix_name}")
        seen_ix.add(ix_name)

        arg_names = set()
        for arg in ix.get("args", []) or []:
            if not isinstance(arg, dict) or not isinstance(arg.get("name"), str):
                err(f"Instruction {ix_name} has an argument without a name")
                continue
            arg_names.add(arg["name"])
            for ref in _walk_defined(arg.get("type")):
                referenced.append((ref, f"instruction {ix_name}"))

        stack = list(ix.get("accounts", []) or [])
        while stack:
            account = stack.pop(0)
            if not isinstance(account, dict):
                err(f"Instruction {ix_name} has a malformed account")
                continue
            if isinstance(account.get("accounts"), list):
                stack.extend(account["accounts"])
                continue
            pda = account.get("pda")
            if not isinstance(pda, dict):
                continue
            aname = account.get("name", "?")
            for seed in pda.get("seeds", []) or []:
                kind = seed.get("kind") if isinstance(seed, dict) else None
                if kind not in SEED_KINDS:
                    err(f"Instruction {ix_name} account {aname} has unknown seed kind: {kind}")
                    continue
                if kind == "const" and not isinstance(seed.get("value"), (list, str)):
                    err(f"Instruction {ix_name} account {aname} has a const seed without a value")
                if kind in ("arg", "account") and not isinstance(seed.get("path"), str):
                    err(f"Instruction {ix_name} account {aname} has an {kind} seed without a path")
                if kind == "arg" and isinstance(seed.get("path"), str):
                    root = seed["path"].split(".", 1)[0]
                    if root not in arg_names:
                        err(f"Instruction {ix_name} account {aname} seeds on undeclared argument: {root}")

    for ref, where in referenced:
        if ref not in declared:
            err(f"Undefined type {ref} referenced by {where}")

    return errors


def raise_on_errors(errors: List[str]) -> None:
    if errors:
        raise SchemaError("\n".join(errors))
