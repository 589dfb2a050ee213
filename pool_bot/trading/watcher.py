from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey

from pool_bot.common import gather_or_cancel, log_event

from .errors import TransientFeedError
from .types import PoolInfo, now_iso

AMM_V4_STATE_SIZE = 752
_U64 = struct.Struct("<Q")

# byte offsets inside the Raydium AMM v4 state account
_BASE_DECIMAL_OFFSET = 32
_QUOTE_DECIMAL_OFFSET = 40
_BASE_NEED_TAKE_PNL_OFFSET = 192
_QUOTE_NEED_TAKE_PNL_OFFSET = 200
_BASE_VAULT_OFFSET = 336
_QUOTE_VAULT_OFFSET = 368
_BASE_MINT_OFFSET = 400
_QUOTE_MINT_OFFSET = 432
_OPEN_ORDERS_OFFSET = 496

# OpenBook / Serum v3 open orders: 5 byte "serum" prefix, flags, market, owner
OPEN_ORDERS_MIN_SIZE = 109
_OO_BASE_TOKEN_TOTAL_OFFSET = 85
_OO_QUOTE_TOKEN_TOTAL_OFFSET = 101

PRICE_QUANTUM = Decimal("0.00000001")


def _read_u64(data: bytes, offset: int) -> int:
    return _U64.unpack_from(data, offset)[0]


def _read_pubkey(data: bytes, offset: int) -> Pubkey:
    return Pubkey.from_bytes(data[offset : offset + 32])


@dataclass(slots=True, frozen=True)
class AmmPoolState:
    base_decimals: int
    quote_decimals: int
    base_need_take_pnl: int
    quote_need_take_pnl: int
    base_vault: Pubkey
    quote_vault: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    open_orders: Pubkey

    @classmethod
    def decode(cls, data: bytes) -> "AmmPoolState":
        if len(data) < AMM_V4_STATE_SIZE:
            raise ValueError(f"AMM v4 state is {len(data)} bytes, expected {AMM_V4_STATE_SIZE}")
        return cls(
            base_decimals=_read_u64(data, _BASE_DECIMAL_OFFSET),
            quote_decimals=_read_u64(data, _QUOTE_DECIMAL_OFFSET),
            base_need_take_pnl=_read_u64(data, _BASE_NEED_TAKE_PNL_OFFSET),
            quote_need_take_pnl=_read_u64(data, _QUOTE_NEED_TAKE_PNL_OFFSET),
            base_vault=_read_pubkey(data, _BASE_VAULT_OFFSET),
            quote_vault=_read_pubkey(data, _QUOTE_VAULT_OFFSET),
            base_mint=_read_pubkey(data, _BASE_MINT_OFFSET),
            quote_mint=_read_pubkey(data, _QUOTE_MINT_OFFSET),
            open_orders=_read_pubkey(data, _OPEN_ORDERS_OFFSET),
        )


@dataclass(slots=True, frozen=True)
class OpenOrdersTotals:
    base_token_total: int = 0
    quote_token_total: int = 0

    @classmethod
    def decode(cls, data: bytes | None) -> "OpenOrdersTotals":
        if not data or len(data) < OPEN_ORDERS_MIN_SIZE:
            return cls()
        return cls(
            base_token_total=_read_u64(data, _OO_BASE_TOKEN_TOTAL_OFFSET),
            quote_token_total=_read_u64(data, _OO_QUOTE_TOKEN_TOTAL_OFFSET),
        )


def derive_token_price(
    *,
    pool_state: AmmPoolState,
    open_orders: OpenOrdersTotals,
    base_vault_amount: int,
    quote_vault_amount: int,
) -> tuple[Decimal, Decimal, Decimal]:
    base_scale = -int(pool_state.base_decimals)
    quote_scale = -int(pool_state.quote_decimals)

    base = (
        Decimal(base_vault_amount + open_orders.base_token_total - pool_state.base_need_take_pnl)
    ).scaleb(base_scale)
    quote = (
        Decimal(quote_vault_amount + open_orders.quote_token_total - pool_state.quote_need_take_pnl)
    ).scaleb(quote_scale)

    if base <= 0 or quote <= 0:
        raise TransientFeedError(f"Pool reserves are not positive: base={base} quote={quote}")

    price = (base / quote).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)
    return price, base, quote


class RaydiumPoolWatcher:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        rpc_url: str,
        pool_address: str,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = logger
        self._rpc_url = rpc_url.strip()
        self._pool_address = pool_address.strip()
        self._timeout_seconds = timeout_seconds
        self._client: AsyncClient | None = None
        self._pool_pubkey: Pubkey | None = None

    async def connect(self) -> None:
        if not self._rpc_url:
            raise ValueError("SOLANA_RPC_URL is required for the pool watcher.")
        if not self._pool_address:
            raise ValueError("POOL_ADDRESS is required for the pool watcher.")

        self._pool_pubkey = Pubkey.from_string(self._pool_address)
        if self._client is None:
            self._client = AsyncClient(self._rpc_url, commitment=Confirmed, timeout=self._timeout_seconds)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def healthcheck(self) -> None:
        await self.fetch_pool_info()

    async def _rpc(self) -> AsyncClient:
        if self._client is None or self._pool_pubkey is None:
            await self.connect()
        if self._client is None:
            raise RuntimeError("RPC client is not initialized.")
        return self._client

    async def _fetch_account_data(self, address: Pubkey) -> bytes | None:
        client = await self._rpc()
        response = await client.get_account_info(address)
        if response.value is None:
            return None
        return bytes(response.value.data)

    async def _fetch_vault_amount(self, vault: Pubkey) -> int:
        client = await self._rpc()
        response = await client.get_token_account_balance(vault)
        return int(response.value.amount)

    async def fetch_pool_info(self) -> PoolInfo:
        try:
            await self._rpc()
            if self._pool_pubkey is None:
                raise RuntimeError("Pool address is not initialized.")

            pool_data = await self._fetch_account_data(self._pool_pubkey)
            if pool_data is None:
                raise TransientFeedError(f"Pool account {self._pool_address} was not found.")

            pool_state = AmmPoolState.decode(pool_data)
            open_orders_data, base_vault_amount, quote_vault_amount = await gather_or_cancel(
                self._fetch_account_data(pool_state.open_orders),
                self._fetch_vault_amount(pool_state.base_vault),
                self._fetch_vault_amount(pool_state.quote_vault),
            )
            price, base, quote = derive_token_price(
                pool_state=pool_state,
                open_orders=OpenOrdersTotals.decode(open_orders_data),
                base_vault_amount=base_vault_amount,
                quote_vault_amount=quote_vault_amount,
            )
        except asyncio.CancelledError:
            raise
        except TransientFeedError:
            raise
        except Exception as error:
            raise TransientFeedError(f"Pool read failed: {error}") from error

        log_event(
            self._logger,
            level="debug",
            event="pool_price_observed",
            message="Pool price observed",
            pool=self._pool_address,
            price=str(price),
            base_reserve=str(base),
            quote_reserve=str(quote),
        )
        return PoolInfo(
            pool_address=self._pool_address,
            token_price=price,
            base_mint=str(pool_state.base_mint),
            quote_mint=str(pool_state.quote_mint),
            base_reserve=base,
            quote_reserve=quote,
            timestamp=now_iso(),
        )
