from __future__ import annotations

import contextlib
import json
import logging

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from pool_bot.common import log_event

from .types import TOKEN_PROGRAM_ID


def parse_private_key(raw: str) -> Keypair:
    value = raw.strip()

    if value.startswith("["):
        arr = json.loads(value)
        if not isinstance(arr, list):
            raise ValueError("PRIVATE_KEY JSON must be an integer array.")
        return Keypair.from_bytes(bytes(arr))

    with contextlib.suppress(Exception):
        return Keypair.from_base58_string(value)

    raise ValueError("Unsupported PRIVATE_KEY format.")


class SolanaWallet:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_url: str,
        private_key: str,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = logger
        self._rpc_url = rpc_url.strip()
        self._private_key = private_key
        self._timeout_seconds = timeout_seconds
        self._client: AsyncClient | None = None
        self._signer: Keypair | None = None

    async def connect(self) -> None:
        if not self._rpc_url:
            raise ValueError("SOLANA_RPC_URL is required when DRY_RUN is false.")
        if not self._private_key:
            raise ValueError("PRIVATE_KEY is required when DRY_RUN is false.")

        if self._client is None:
            self._client = AsyncClient(self._rpc_url, commitment=Confirmed, timeout=self._timeout_seconds)
        if self._signer is None:
            self._signer = parse_private_key(self._private_key)
            log_event(
                self._logger,
                level="info",
                event="wallet_loaded",
                message="Trading wallet loaded",
                wallet=str(self._signer.pubkey()),
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def healthcheck(self) -> None:
        await self.fetch_latest_blockhash()

    @property
    def keypair(self) -> Keypair:
        if self._signer is None:
            raise RuntimeError("Signer is not initialized.")
        return self._signer

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    async def _rpc(self) -> AsyncClient:
        if self._client is None:
            await self.connect()
        if self._client is None:
            raise RuntimeError("RPC client is not initialized.")
        return self._client

    async def fetch_token_accounts(self) -> dict[str, Pubkey]:
        client = await self._rpc()
        response = await client.get_token_accounts_by_owner_json_parsed(
            self.pubkey,
            TokenAccountOpts(program_id=Pubkey.from_string(TOKEN_PROGRAM_ID)),
        )

        accounts: dict[str, Pubkey] = {}
        for keyed_account in response.value:
            parsed = keyed_account.account.data.parsed
            info = parsed.get("info") if isinstance(parsed, dict) else None
            mint = str((info or {}).get("mint") or "").strip()
            if mint and mint not in accounts:
                accounts[mint] = keyed_account.pubkey
        return accounts

    async def fetch_token_balance(self, token_account: Pubkey) -> int:
        client = await self._rpc()
        response = await client.get_token_account_balance(token_account)
        return int(response.value.amount)

    async def fetch_sol_balance(self) -> int:
        client = await self._rpc()
        response = await client.get_balance(self.pubkey)
        return int(response.value)

    async def fetch_latest_blockhash(self) -> Hash:
        client = await self._rpc()
        response = await client.get_latest_blockhash()
        return response.value.blockhash
