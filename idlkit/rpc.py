"""Account fetching over Solana JSON-RPC."""

from __future__ import annotations

import logging
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solders.pubkey import Pubkey

from .accounts import AccountInfo
from .constants import DEFAULT_COMMITMENT

logger = logging.getLogger(__name__)


class RpcAccountFetcher:
    """Callable ``fetch_account`` collaborator backed by ``AsyncClient``.

    Returns ``None`` for accounts that do not exist. Transport errors propagate
    to the caller; the derivation engine wraps them.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = DEFAULT_COMMITMENT,
        client: Optional[AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self._client = client or AsyncClient(rpc_url)

    async def __call__(self, address: Pubkey) -> Optional[AccountInfo]:
        logger.debug("getAccountInfo %s via %s", address, self.rpc_url)
        resp = await self._client.get_account_info(
            address,
            commitment=Commitment(self.commitment),
            encoding="base64",
        )
        value = resp.value
        if value is None:
            logger.debug("Account %s not found", address)
            return None
        return AccountInfo(owner=value.owner, data=bytes(value.data))

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> "RpcAccountFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
