"""IDL document loading."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import SEED_KINDS
from .errors import SchemaError
from .schema import AliasDef, EnumDef, Field, StructDef, TypeDefinition, Variant, classify
from .util import find_by_name


@dataclass(frozen=True)
class Seed:
    kind: str
    value: Optional[bytes] = None
    path: Optional[str] = None
    # Type name of the account whose data holds the field, for dotted account paths.
    account: Optional[str] = None

    @property
    def is_account_field(self) -> bool:
        return self.kind == "account" and bool(self.path) and "." in self.path

    @property
    def root(self) -> Optional[str]:
        if self.path is None:
            return None
        return self.path.split(".", 1)[0]


@dataclass(frozen=True)
class Pda:
    seeds: Tuple[Seed, ...]
    program: Optional[Seed] = None


@dataclass(frozen=True)
class AccountSpec:
    name: str
    writable: bool = False
    signer: bool = False
    optional: bool = False
    address: Optional[str] = None
    pda: Optional[Pda] = None


@dataclass(frozen=True)
class Instruction:
    name: str
    args: Tuple[Field, ...] = ()
    accounts: Tuple[AccountSpec, ...] = ()

    def arg(self, name: str) -> Optional[Field]:
        for item in self.args:
            if item.name == name:
                return item
        return None

    def account(self, name: str) -> Optional[AccountSpec]:
        for item in self.accounts:
            if item.name == name:
                return item
        return None

    def pda_accounts(self) -> List[AccountSpec]:
        return [a for a in self.accounts if a.pda is not None]


@dataclass(frozen=True)
class Idl:
    """Immutable, parsed program interface shared by every conversion."""

    name: str
    address: Optional[str] = None
    instructions: Tuple[Instruction, ...] = ()
    types: Mapping[str, TypeDefinition] = field(default_factory=lambda: MappingProxyType({}))
    accounts: Tuple[str, ...] = ()
    # Account type name -> declared discriminator bytes.
    discriminators: Mapping[str, bytes] = field(default_factory=lambda: MappingProxyType({}))

    def instruction(self, name: str) -> Instruction:
        found = find_by_name(self.instructions, name)
        if found is None:
            raise SchemaError(f"Unknown instruction: {name}")
        return found


def _require_name(raw: Dict[str, Any], what: str) -> str:
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise SchemaError(f"{what} is missing a name")
    return name


def _parse_fields(raw: Any, owner: str) -> Tuple[Any, ...]:
    if not isinstance(raw, list):
        raise SchemaError(f"{owner}: fields must be a list")
    out: List[Any] = []
    for item in raw:
        # Named fields are objects with a name; tuple fields are bare types.
        if isinstance(item, dict) and "name" in item and "type" in item:
            out.append(Field(_require_name(item, f"{owner} field"), classify(item["type"])))
        else:
            out.append(classify(item))
    return tuple(out)


def _parse_type_def(raw: Dict[str, Any]) -> Optional[TypeDefinition]:
    name = _require_name(raw, "Type definition")
    body = raw.get("type")
    if not isinstance(body, dict):
        raise SchemaError(f"Type {name} has no type body")
    kind = body.get("kind")
    if kind == "struct":
        return StructDef(name, _parse_fields(body.get("fields", []), name))
    if kind == "enum":
        variants_raw = body.get("variants")
        if not isinstance(variants_raw, list):
            raise SchemaError(f"Enum {name} has no variants list")
        variants: List[Variant] = []
        for item in variants_raw:
            if not isinstance(item, dict):
                raise SchemaError(f"Enum {name} has a malformed variant")
            vname = _require_name(item, f"Enum {name} variant")
            fields = item.get("fields")
            variants.append(Variant(vname, _parse_fields(fields, f"{name}::{vname}") if fields else None))
        return EnumDef(name, tuple(variants))
    if kind == "type":
        return AliasDef(name, classify(body.get("alias")))
    return None


def _seed_bytes(raw: Any, owner: str) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8")
    if isinstance(raw, list) and all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        return bytes(raw)
    raise SchemaError(f"{owner}: const seed value must be a byte list")


def _discriminator(raw: Any, account: str) -> bytes:
    if isinstance(raw, list) and raw and all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        return bytes(raw)
    raise SchemaError(f"Account {account} has a malformed discriminator")


def _parse_seed(raw: Any, owner: str) -> Seed:
    if not isinstance(raw, dict):
        raise SchemaError(f"{owner}: malformed seed")
    kind = raw.get("kind")
    if kind not in SEED_KINDS:
        raise SchemaError(f"{owner}: unknown seed kind {kind!r}")
    if kind == "const":
        return Seed(kind="const", value=_seed_bytes(raw.get("value"), owner))
    path = raw.get("path")
    if not isinstance(path, str) or not path:
        raise SchemaError(f"{owner}: {kind} seed is missing a path")
    account = raw.get("account") if isinstance(raw.get("account"), str) else None
    return Seed(kind=kind, path=path, account=account)


def _parse_accounts(raw: Any, owner: str) -> List[AccountSpec]:
    if not isinstance(raw, list):
        raise SchemaError(f"{owner}: accounts must be a list")
    out: List[AccountSpec] = []
    for item in raw:
        if not isinstance(item, dict):
            raise SchemaError(f"{owner}: malformed account entry")
        if isinstance(item.get("accounts"), list):
            # composite account group
            out.extend(_parse_accounts(item["accounts"], owner))
            continue
        name = _require_name(item, f"{owner} account")
        pda = None
        pda_raw = item.get("pda")
        if isinstance(pda_raw, dict):
            where = f"{owner}.{name}"
            seeds = tuple(_parse_seed(s, where) for s in pda_raw.get("seeds", []))
            program = _parse_seed(pda_raw["program"], where) if pda_raw.get("program") else None
            pda = Pda(seeds=seeds, program=program)
        out.append(
            AccountSpec(
                name=name,
                writable=bool(item.get("writable", item.get("isMut", False))),
                signer=bool(item.get("signer", item.get("isSigner", False))),
                optional=bool(item.get("optional", item.get("isOptional", False))),
                address=item.get("address") if isinstance(item.get("address"), str) else None,
                pda=pda,
            )
        )
    return out


def _parse_instruction(raw: Any) -> Instruction:
    if not isinstance(raw, dict):
        raise SchemaError("Malformed instruction entry")
    name = _require_name(raw, "Instruction")
    args_raw = raw.get("args", [])
    if not isinstance(args_raw, list):
        raise SchemaError(f"{name}: args must be a list")
    args: List[Field] = []
    for item in args_raw:
        if not isinstance(item, dict):
            raise SchemaError(f"{name}: malformed argument entry")
        args.append(Field(_require_name(item, f"{name} argument"), classify(item.get("type"))))
    accounts = tuple(_parse_accounts(raw.get("accounts", []), name))
    return Instruction(name=name, args=tuple(args), accounts=accounts)


def parse_idl(raw: Dict[str, Any]) -> Idl:
    if not isinstance(raw, dict):
        raise SchemaError("IDL document must be a JSON object")
    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
    name = metadata.get("name") or raw.get("name") or "program"

    instructions_raw = raw.get("instructions")
    if not isinstance(instructions_raw, list):
        raise SchemaError("IDL has no instructions list")
    instructions = tuple(_parse_instruction(ix) for ix in instructions_raw)

    types: Dict[str, TypeDefinition] = {}
    for item in raw.get("types", []) or []:
        if not isinstance(item, dict):
            raise SchemaError("Malformed type definition")
        definition = _parse_type_def(item)
        if definition is not None:
            types[definition.name] = definition

    accounts: List[str] = []
    discriminators: Dict[str, bytes] = {}
    for item in raw.get("accounts", []) or []:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            continue
        account_name = item["name"]
        accounts.append(account_name)
        if item.get("discriminator") is not None:
            discriminators[account_name] = _discriminator(item["discriminator"], account_name)
        # legacy IDLs declare the account layout inline
        if isinstance(item.get("type"), dict) and account_name not in types:
            definition = _parse_type_def(item)
            if definition is not None:
                types[account_name] = definition

    address = raw.get("address") or metadata.get("address")
    return Idl(
        name=str(name),
        address=address if isinstance(address, str) else None,
        instructions=instructions,
        types=MappingProxyType(types),
        accounts=tuple(accounts),
        discriminators=MappingProxyType(discriminators),
    )


def loads_idl(text: str) -> Idl:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaError(f"IDL is not valid JSON: {exc}") from exc
    return parse_idl(raw)


def load_idl(path: str | Path) -> Idl:
    idl_path = Path(path)
    if not idl_path.exists():
        raise FileNotFoundError(f"IDL not found: {idl_path}")
    return loads_idl(idl_path.read_text(encoding="utf-8"))
