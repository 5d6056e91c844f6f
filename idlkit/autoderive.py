"""Derive every PDA account of an instruction from the inputs collected so far."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional

from .accounts import Decode, FetchAccount, derive_account_pda
from .deps import check_dependencies
from .errors import IdlKitError
from .idl import AccountSpec, Idl, Instruction
from .util import is_blank

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_READY = "ready"
STATUS_ERROR = "error"


@dataclass
class DerivedPda:
    address: str = ""
    status: str = STATUS_IDLE
    error: Optional[str] = None
    missing: List[str] = field(default_factory=list)


class PdaTracker:
    """Tracks derived addresses for one instruction across form edits.

    Each :meth:`refresh` starts a new generation. A refresh that finishes after
    a newer one has started returns ``None`` and leaves :attr:`derived` alone,
    so a slow fetch can never overwrite fresher results.
    """

    def __init__(
        self,
        idl: Idl,
        instruction: Instruction,
        fetch_account: Optional[FetchAccount] = None,
        decode: Optional[Decode] = None,
        concurrent: bool = True,
    ) -> None:
        self.idl = idl
        self.instruction = instruction
        self.fetch_account = fetch_account
        self.decode = decode
        self.concurrent = concurrent
        self.generation = 0
        self.derived: Dict[str, DerivedPda] = {}

    def known_accounts(self, accounts: Mapping[str, Any]) -> Dict[str, Any]:
        known = dict(accounts)
        for account in self.instruction.accounts:
            if account.address and is_blank(known.get(account.name)):
                known[account.name] = account.address
        return known

    async def _derive_one(self, account: AccountSpec, args: Mapping[str, Any], known: Mapping[str, Any]) -> DerivedPda:
        try:
            pda = await derive_account_pda(
                account,
                instruction=self.instruction,
                idl=self.idl,
                accounts=known,
                args=args,
                fetch_account=self.fetch_account,
                decode=self.decode,
                concurrent=self.concurrent,
            )
        except IdlKitError as exc:
            logger.debug("Failed to derive PDA for %s: %s", account.name, exc)
            return DerivedPda(status=STATUS_ERROR, error=str(exc))
        return DerivedPda(address=str(pda), status=STATUS_READY)

    async def refresh(self, args: Mapping[str, Any], accounts: Mapping[str, Any]) -> Optional[Dict[str, DerivedPda]]:
        self.generation += 1
        generation = self.generation
        known = self.known_accounts(accounts)
        results: Dict[str, DerivedPda] = {}

        # Derived addresses feed later recipes, so repeat until a pass makes no
        # progress. Recipes that depend on each other never become ready.
        remaining = self.instruction.pda_accounts()
        progress = True
        while remaining and progress:
            progress = False
            waiting: List[AccountSpec] = []
            for account in remaining:
                if not check_dependencies(account, args, known).ready:
                    waiting.append(account)
                    continue
                result = await self._derive_one(account, args, known)
                if generation != self.generation:
                    logger.debug("Discarding stale derivation (generation %d)", generation)
                    return None
                results[account.name] = result
                if result.status == STATUS_READY and is_blank(known.get(account.name)):
                    known[account.name] = result.address
                progress = True
            remaining = waiting

        for account in remaining:
            deps = check_dependencies(account, args, known)
            results[account.name] = DerivedPda(status=STATUS_IDLE, missing=deps.missing)

        self.derived = results
        return dict(results)
