"""Synchronous readiness checks for PDA seed recipes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Sequence, Union

from .idl import AccountSpec, Seed
from .util import is_blank, lookup_field


@dataclass
class Dependencies:
    ready: bool
    missing: List[str] = field(default_factory=list)


def is_account_pda(account: AccountSpec) -> bool:
    return account.pda is not None


def is_pda_auto_derivable(account: AccountSpec) -> bool:
    """True when the recipe needs no account address at all."""
    if account.pda is None or not account.pda.seeds:
        return False
    return all(seed.kind != "account" for seed in account.pda.seeds)


def is_pda_complex(account: AccountSpec) -> bool:
    """True when the recipe reads a field from another account's data."""
    if account.pda is None:
        return False
    return any(seed.is_account_field for seed in account.pda.seeds)


def _has(mapping: Mapping[str, Any], name: str) -> bool:
    _, value = lookup_field(mapping, name)
    return not is_blank(value)


def check_dependencies(
    target: Union[AccountSpec, Sequence[Seed]],
    args: Mapping[str, Any],
    accounts: Mapping[str, Any],
) -> Dependencies:
    if isinstance(target, AccountSpec):
        seeds: Sequence[Seed] = target.pda.seeds if target.pda is not None else ()
    else:
        seeds = target

    missing: List[str] = []
    for seed in seeds:
        label = None
        if seed.kind == "arg":
            if not _has(args, seed.root or ""):
                label = f"arg: {seed.path}"
        elif seed.kind == "account" and seed.is_account_field:
            # only the owning account is needed now; the field is fetched later
            owner = seed.root or ""
            if not (_has(args, owner) or _has(accounts, owner)):
                label = f"account: {owner}"
        elif seed.kind == "account":
            if not _has(accounts, seed.path or ""):
                label = f"account: {seed.path}"
        if label and label not in missing:
            missing.append(label)

    return Dependencies(ready=not missing, missing=missing)
