"""Program-derived address resolution from IDL seed recipes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from solders.pubkey import Pubkey

from .constants import MAX_SEED_LEN, PUBKEY_LEN
from .convert import parse_pubkey
from .errors import IdlKitError, MissingInputError, ResolutionError, SchemaError, SeedSizeError
from .idl import AccountSpec, Idl, Instruction, Seed
from .pack import to_seed_bytes
from .schema import Field, IdlType, resolve_alias, struct_fields
from .util import is_blank, lookup_field, to_camel_case


@dataclass(frozen=True)
class AccountInfo:
    owner: Pubkey
    data: bytes


FetchAccount = Callable[[Pubkey], Awaitable[Optional[AccountInfo]]]
Decode = Callable[[str, bytes], Any]
AddressLike = Union[str, Pubkey]


def find_program_address(seeds: Sequence[bytes], program_id: AddressLike) -> Tuple[Pubkey, int]:
    return Pubkey.find_program_address(list(seeds), parse_pubkey(program_id))


def _match_field(fields: Sequence[Any], name: str) -> Optional[Field]:
    named = [f for f in fields if isinstance(f, Field)]
    for f in named:
        if f.name == name:
            return f
    camel = to_camel_case(name)
    for f in named:
        if to_camel_case(f.name) == camel:
            return f
    return None


def _read_field(container: Any, name: str) -> Tuple[bool, Any]:
    if isinstance(container, Mapping):
        return lookup_field(container, name)
    # attribute-style decoded objects
    for attr in (name, to_camel_case(name)):
        if hasattr(container, attr):
            return True, getattr(container, attr)
    return False, None


def _check_size(buffer: bytes, index: int) -> bytes:
    if len(buffer) > MAX_SEED_LEN:
        raise SeedSizeError(index, len(buffer))
    return buffer


# ---------------------------------------------------------------------------
# Synchronous seeds
# ---------------------------------------------------------------------------


def _arg_seed(seed: Seed, instruction: Instruction, idl: Optional[Idl], args: Mapping[str, Any]) -> bytes:
    path = seed.path or ""
    root, _, rest = path.partition(".")
    declared = _match_field(instruction.args, root)
    if declared is None:
        raise SchemaError(f"Missing argument type for {path}")

    type_: IdlType = declared.type
    _, value = lookup_field(args, declared.name)
    for part in rest.split(".") if rest else []:
        fields = struct_fields(idl, type_) if idl is not None else None
        field = _match_field(fields or (), part)
        if field is None:
            raise SchemaError(f"Missing argument type for {path}")
        type_ = field.type
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                value = None
        value = _read_field(value, part)[1] if value is not None else None

    if is_blank(value):
        raise MissingInputError(f"Missing argument value for {path}", missing=[f"arg: {path}"])
    if idl is not None:
        type_ = resolve_alias(idl, type_)
    try:
        return to_seed_bytes(value, type_)
    except IdlKitError as exc:
        raise exc.at(path)


def _account_seed(seed: Seed, accounts: Mapping[str, Any]) -> bytes:
    path = seed.path or ""
    _, address = lookup_field(accounts, path)
    if is_blank(address):
        raise MissingInputError(f"Missing account: {path}", missing=[f"account: {path}"])
    try:
        return bytes(parse_pubkey(address))
    except IdlKitError as exc:
        raise exc.at(path)


# ---------------------------------------------------------------------------
# Account data seeds
# ---------------------------------------------------------------------------


def _owner_address(account_name: str, accounts: Mapping[str, Any], args: Mapping[str, Any]) -> Any:
    # A value typed into the argument form wins over the known-accounts map.
    _, address = lookup_field(args, account_name)
    if is_blank(address):
        _, address = lookup_field(accounts, account_name)
    return address


async def _account_field_seed(
    seed: Seed,
    idl: Optional[Idl],
    accounts: Mapping[str, Any],
    args: Mapping[str, Any],
    fetch_account: Optional[FetchAccount],
    decode: Optional[Decode],
) -> bytes:
    path = seed.path or ""
    account_name, _, field_path = path.partition(".")
    if not field_path:
        raise SchemaError(f"Invalid seed path: {path}")

    address = _owner_address(account_name, accounts, args)
    if is_blank(address):
        raise MissingInputError(f"Missing account: {account_name}", missing=[f"account: {account_name}"])
    if fetch_account is None or decode is None:
        raise ResolutionError(f"No account fetcher or decoder configured to resolve {path}")

    pubkey = parse_pubkey(address)
    try:
        info = await fetch_account(pubkey)
    except IdlKitError:
        raise
    except Exception as exc:
        raise ResolutionError(f"Failed to fetch account {account_name} ({pubkey}): {exc}") from exc
    if info is None:
        raise ResolutionError(f"Account not found: {account_name} ({pubkey})")

    type_name = seed.account or account_name
    try:
        decoded = decode(type_name, info.data)
    except IdlKitError:
        raise
    except Exception as exc:
        raise ResolutionError(f"Failed to decode account {account_name} as {type_name}: {exc}") from exc

    value: Any = decoded
    for part in field_path.split("."):
        found, value = _read_field(value, part) if value is not None else (False, None)
        if not found or value is None:
            raise ResolutionError(f"Field not found: {field_path} in account {account_name}")

    field_type = _field_type(idl, type_name, field_path)
    if field_type is None:
        raise ResolutionError(f"Field type not found: {field_path} in type {type_name}")

    if isinstance(value, Pubkey):
        return bytes(value)
    try:
        return to_seed_bytes(value, field_type)
    except IdlKitError as exc:
        raise exc.at(path)


def _field_type(idl: Optional[Idl], type_name: str, field_path: str) -> Optional[IdlType]:
    if idl is None:
        return None
    type_: Any = type_name
    for part in field_path.split("."):
        fields = struct_fields(idl, {"defined": type_} if isinstance(type_, str) else type_)
        field = _match_field(fields or (), part)
        if field is None:
            return None
        type_ = field.type
    return resolve_alias(idl, type_)


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


async def resolve_seeds(
    seeds: Sequence[Seed],
    *,
    instruction: Instruction,
    idl: Optional[Idl],
    accounts: Mapping[str, Any],
    args: Mapping[str, Any],
    fetch_account: Optional[FetchAccount] = None,
    decode: Optional[Decode] = None,
    concurrent: bool = True,
) -> List[bytes]:
    """Turn a seed recipe into byte buffers, in recipe order.

    Seeds that need no I/O are resolved first so a missing input fails before
    any network call. Account-data lookups then run concurrently unless
    ``concurrent`` is false; failures are reported in recipe order.
    """
    buffers: List[Optional[bytes]] = []
    pending: List[Tuple[int, Seed]] = []
    for index, seed in enumerate(seeds):
        if seed.kind == "const":
            buffers.append(_check_size(seed.value or b"", index))
        elif seed.kind == "arg":
            buffers.append(_check_size(_arg_seed(seed, instruction, idl, args), index))
        elif seed.kind == "account" and seed.is_account_field:
            buffers.append(None)
            pending.append((index, seed))
        elif seed.kind == "account":
            buffers.append(_check_size(_account_seed(seed, accounts), index))
        else:
            raise SchemaError(f"Unknown seed kind: {seed.kind}")

    if pending:
        def lookup(seed: Seed) -> Awaitable[bytes]:
            return _account_field_seed(seed, idl, accounts, args, fetch_account, decode)

        if concurrent:
            results = await asyncio.gather(*(lookup(s) for _, s in pending), return_exceptions=True)
        else:
            results = []
            for _, s in pending:
                results.append(await lookup(s))
        for (index, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                raise result
            buffers[index] = _check_size(result, index)

    return [b for b in buffers if b is not None]


async def _program_id_for(
    program_seed: Optional[Seed],
    program_id: Optional[AddressLike],
    **resolve_kwargs: Any,
) -> Pubkey:
    if program_seed is not None:
        (raw,) = await resolve_seeds([program_seed], **resolve_kwargs)
        if len(raw) != PUBKEY_LEN:
            raise SchemaError(f"PDA program seed must be {PUBKEY_LEN} bytes, got {len(raw)}")
        return Pubkey.from_bytes(raw)
    if is_blank(program_id):
        raise SchemaError("No program id available for PDA derivation")
    return parse_pubkey(program_id)


async def derive_pda_with_bump(
    seeds: Sequence[Seed],
    program_id: Optional[AddressLike],
    *,
    instruction: Instruction,
    idl: Optional[Idl] = None,
    accounts: Optional[Mapping[str, Any]] = None,
    args: Optional[Mapping[str, Any]] = None,
    fetch_account: Optional[FetchAccount] = None,
    decode: Optional[Decode] = None,
    program_seed: Optional[Seed] = None,
    concurrent: bool = True,
) -> Tuple[Pubkey, int]:
    resolve_kwargs: Dict[str, Any] = {
        "instruction": instruction,
        "idl": idl,
        "accounts": accounts or {},
        "args": args or {},
        "fetch_account": fetch_account,
        "decode": decode,
        "concurrent": concurrent,
    }
    buffers = await resolve_seeds(seeds, **resolve_kwargs)
    derivation_program = await _program_id_for(program_seed, program_id, **resolve_kwargs)
    return find_program_address(buffers, derivation_program)


async def derive_pda(
    seeds: Sequence[Seed],
    program_id: Optional[AddressLike],
    **kwargs: Any,
) -> Pubkey:
    pda, _ = await derive_pda_with_bump(seeds, program_id, **kwargs)
    return pda


async def derive_account_pda(
    account: AccountSpec,
    *,
    instruction: Instruction,
    idl: Idl,
    accounts: Optional[Mapping[str, Any]] = None,
    args: Optional[Mapping[str, Any]] = None,
    fetch_account: Optional[FetchAccount] = None,
    decode: Optional[Decode] = None,
    program_id: Optional[AddressLike] = None,
    concurrent: bool = True,
) -> Pubkey:
    if account.pda is None:
        raise SchemaError(f"Account {account.name} has no PDA seeds")
    return await derive_pda(
        account.pda.seeds,
        program_id if program_id is not None else idl.address,
        instruction=instruction,
        idl=idl,
        accounts=accounts,
        args=args,
        fetch_account=fetch_account,
        decode=decode,
        program_seed=account.pda.program,
        concurrent=concurrent,
    )
