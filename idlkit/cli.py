"""CLI entrypoint for idlkit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

from solders.pubkey import Pubkey

from .accounts import AccountInfo, Decode, derive_account_pda
from .coder import AccountCoder
from .config import load_settings
from .convert import convert_args
from .deps import check_dependencies, is_pda_auto_derivable, is_pda_complex
from .errors import IdlKitError, ResolutionError
from .idl import AccountSpec, Idl, Instruction, load_idl
from .rpc import RpcAccountFetcher
from .schema import display_name
from .validate import validate_idl


def _parse_keymap(items: list[str] | None, flag: str) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for item in items or []:
        if "=" not in item:
            raise ValueError(f"{flag} entries must be in name=value form")
        name, value = item.split("=", 1)
        name = name.strip()
        value = value.strip()
        if not name or not value:
            raise ValueError(f"{flag} entries must be in name=value form")
        mapping[name] = value
    return mapping


def _load_json_arg(raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    if raw.startswith("@"):
        path = Path(raw[1:])
        if not path.exists():
            raise FileNotFoundError(f"Arguments file not found: {path}")
        raw = path.read_text()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"--args must be a JSON object: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("--args must be a JSON object")
    return data


def _json_default(value: Any) -> Any:
    if isinstance(value, Pubkey):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    raise TypeError(f"Cannot serialise {type(value).__name__}")


def _pda_account(instruction: Instruction, name: str) -> AccountSpec:
    account = instruction.account(name)
    if account is None:
        raise ValueError(f"Instruction {instruction.name} has no account named {name}")
    if account.pda is None:
        raise ValueError(f"Account {name} is not a PDA")
    return account


def _static_decoder(paths: dict[str, str]) -> Decode:
    table: dict[str, Any] = {}
    for type_name, path in paths.items():
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Decoded account file not found: {file_path}")
        table[type_name] = json.loads(file_path.read_text())

    def decode(type_name: str, data: bytes) -> Any:
        if type_name not in table:
            raise ResolutionError(f"No decoded data supplied for account type {type_name}")
        return table[type_name]

    return decode


async def _offline_fetch(address: Pubkey) -> AccountInfo:
    # Account contents come from --decoded files; no bytes are read.
    return AccountInfo(owner=Pubkey.default(), data=b"")


def _idl_path(args: argparse.Namespace) -> str:
    if args.idl:
        return args.idl
    configured = load_settings(args.config).idl_path
    if not configured:
        raise ValueError("No IDL path given and none configured in idlkit.toml [idl] path")
    return configured


def _cmd_validate(args: argparse.Namespace) -> int:
    path = Path(_idl_path(args))
    if not path.exists():
        raise FileNotFoundError(f"IDL not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"IDL is not valid JSON: {exc}") from exc
    errors = validate_idl(raw)
    if errors:
        print("IDL validation failed:\n")
        for msg in errors:
            print(f"- {msg}")
        return 1
    print("IDL valid")
    return 0


def _show_instruction(idl: Idl, instruction: Instruction) -> None:
    print(f"{instruction.name}")
    for arg in instruction.args:
        print(f"  arg {arg.name}: {display_name(idl, arg.type)}")
    for account in instruction.accounts:
        flags = []
        if account.writable:
            flags.append("writable")
        if account.signer:
            flags.append("signer")
        if account.address:
            flags.append(f"address={account.address}")
        if account.pda is not None:
            if is_pda_auto_derivable(account):
                flags.append("pda:auto")
            elif is_pda_complex(account):
                flags.append("pda:account-data")
            else:
                flags.append("pda")
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  account {account.name}{suffix}")


def _cmd_show(args: argparse.Namespace) -> int:
    idl = load_idl(_idl_path(args))
    print(f"program {idl.name} {idl.address or ''}".rstrip())
    if args.instruction:
        _show_instruction(idl, idl.instruction(args.instruction))
        return 0
    for instruction in idl.instructions:
        _show_instruction(idl, instruction)
    return 0


def _cmd_convert(args: argparse.Namespace) -> int:
    idl = load_idl(_idl_path(args))
    instruction = idl.instruction(args.instruction)
    values = _load_json_arg(args.args)
    converted = convert_args(instruction, values, idl)
    print(json.dumps(converted, indent=2, default=_json_default))
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    idl = load_idl(_idl_path(args))
    instruction = idl.instruction(args.instruction)
    account = _pda_account(instruction, args.account)
    deps = check_dependencies(account, _load_json_arg(args.args), _parse_keymap(args.accounts, "--account"))
    if deps.ready:
        print(f"{account.name}: ready")
        return 0
    print(f"{account.name}: waiting on {', '.join(deps.missing)}")
    return 1


async def _derive(args: argparse.Namespace) -> Pubkey:
    idl = load_idl(_idl_path(args))
    instruction = idl.instruction(args.instruction)
    account = _pda_account(instruction, args.account)
    values = _load_json_arg(args.args)
    known = _parse_keymap(args.accounts, "--account")
    overrides = _parse_keymap(args.decoded, "--decoded")

    if not is_pda_complex(account):
        return await derive_account_pda(
            account,
            instruction=instruction,
            idl=idl,
            accounts=known,
            args=values,
            program_id=args.program_id,
        )

    if overrides:
        return await derive_account_pda(
            account,
            instruction=instruction,
            idl=idl,
            accounts=known,
            args=values,
            fetch_account=_offline_fetch,
            decode=_static_decoder(overrides),
            program_id=args.program_id,
        )

    settings = load_settings(args.config)
    rpc_url = args.rpc_url or settings.rpc_url
    async with RpcAccountFetcher(rpc_url, settings.commitment) as fetcher:
        return await derive_account_pda(
            account,
            instruction=instruction,
            idl=idl,
            accounts=known,
            args=values,
            fetch_account=fetcher,
            decode=AccountCoder(idl),
            program_id=args.program_id,
            concurrent=settings.concurrent_fetch,
        )


def _cmd_derive(args: argparse.Namespace) -> int:
    pda = asyncio.run(_derive(args))
    print(str(pda))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog=os.path.basename(sys.argv[0]))
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", help="Path to idlkit.toml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_validate = sub.add_parser("validate", help="Validate an IDL document")
    p_validate.add_argument("idl", nargs="?", help="Path to the IDL JSON (default: [idl] path in idlkit.toml)")
    p_validate.set_defaults(func=_cmd_validate)

    p_show = sub.add_parser("show", help="List instructions, arguments and accounts")
    p_show.add_argument("idl", nargs="?", help="Path to the IDL JSON (default: [idl] path in idlkit.toml)")
    p_show.add_argument("--instruction", help="Only show this instruction")
    p_show.set_defaults(func=_cmd_show)

    p_convert = sub.add_parser("convert", help="Convert instruction arguments to wire values")
    p_convert.add_argument("idl", nargs="?", help="Path to the IDL JSON (default: [idl] path in idlkit.toml)")
    p_convert.add_argument("instruction", help="Instruction name")
    p_convert.add_argument("--args", help="Arguments as JSON text or @file.json")
    p_convert.set_defaults(func=_cmd_convert)

    p_check = sub.add_parser("check", help="Report which inputs a PDA still needs")
    p_check.add_argument("idl", nargs="?", help="Path to the IDL JSON (default: [idl] path in idlkit.toml)")
    p_check.add_argument("instruction", help="Instruction name")
    p_check.add_argument("account", help="PDA account name")
    p_check.add_argument("--args", help="Arguments as JSON text or @file.json")
    p_check.add_argument("--account", dest="accounts", action="append", help="Known account as name=address")
    p_check.set_defaults(func=_cmd_check)

    p_derive = sub.add_parser("derive", help="Derive a PDA account address")
    p_derive.add_argument("idl", nargs="?", help="Path to the IDL JSON (default: [idl] path in idlkit.toml)")
    p_derive.add_argument("instruction", help="Instruction name")
    p_derive.add_argument("account", help="PDA account name")
    p_derive.add_argument("--args", help="Arguments as JSON text or @file.json")
    p_derive.add_argument("--account", dest="accounts", action="append", help="Known account as name=address")
    p_derive.add_argument(
        "--decoded",
        action="append",
        help="Decoded account data as TypeName=file.json; skips the RPC fetch for account-field seeds",
    )
    p_derive.add_argument("--program-id", help="Override the IDL program address")
    p_derive.add_argument("--rpc-url", help="RPC endpoint for account lookups")
    p_derive.set_defaults(func=_cmd_derive)

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    try:
        return args.func(args)
    except (FileNotFoundError, IdlKitError, ValueError) as exc:
        print(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
