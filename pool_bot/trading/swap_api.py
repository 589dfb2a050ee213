from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import Any

import aiohttp

from pool_bot.common import log_event

from .errors import QuoteBuildError
from .types import PriorityFeeEstimate, SwapQuote, TxVersion, to_float, to_int

RAYDIUM_BASE_HOST = "https://api-v3.raydium.io"
RAYDIUM_SWAP_HOST = "https://transaction-v1.raydium.io"
PRIORITY_FEE_PATH = "/main/auto-fee"


def _error_message_from_payload(payload: Any) -> str:
    if isinstance(payload, dict):
        for key in ("msg", "message", "error"):
            message = payload.get(key)
            if message:
                return str(message)
    return str(payload)


class RaydiumSwapClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        base_host: str = RAYDIUM_BASE_HOST,
        swap_host: str = RAYDIUM_SWAP_HOST,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = logger
        self._base_host = base_host.rstrip("/")
        self._swap_host = swap_host.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if self._session is None:
            await self.connect()
        if self._session is None:
            raise QuoteBuildError("HTTP session is not initialized.")

        try:
            async with self._session.request(method, url, params=params, json=json_body) as response:
                status = response.status
                raw_text = await response.text()
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise QuoteBuildError(f"Raydium {operation} request failed: {error}") from error

        try:
            parsed: Any = json.loads(raw_text) if raw_text else {}
        except json.JSONDecodeError:
            parsed = {"raw": raw_text}

        if status >= 400:
            raise QuoteBuildError(
                f"Raydium {operation} failed: status={status} body={str(raw_text)[:240]!r}"
            )
        if not isinstance(parsed, dict):
            raise QuoteBuildError(f"Unexpected Raydium {operation} response: {parsed}")
        if parsed.get("success") is False:
            raise QuoteBuildError(
                f"Raydium {operation} rejected: {_error_message_from_payload(parsed)}"
            )
        return parsed

    async def fetch_priority_fee(self) -> PriorityFeeEstimate:
        payload = await self._request_json(
            "GET",
            f"{self._base_host}{PRIORITY_FEE_PATH}",
            operation="priority fee",
        )
        data = payload.get("data")
        default = data.get("default") if isinstance(data, dict) else None
        if not isinstance(default, dict):
            raise QuoteBuildError(f"Priority fee response has no default tier: {payload}")

        return PriorityFeeEstimate(
            very_high=max(0, to_int(default.get("vh"), 0)),
            high=max(0, to_int(default.get("h"), 0)),
            medium=max(0, to_int(default.get("m"), 0)),
        )

    async def compute_swap(
        self,
        *,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        tx_version: TxVersion,
    ) -> SwapQuote:
        payload = await self._request_json(
            "GET",
            f"{self._swap_host}/compute/swap-base-in",
            operation="swap compute",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(int(amount)),
                "slippageBps": str(int(slippage_bps)),
                "txVersion": tx_version,
            },
        )
        data = payload.get("data")
        if not isinstance(data, dict):
            raise QuoteBuildError(f"Swap compute response has no data: {payload}")

        route_plan = data.get("routePlan")
        pool_ids = tuple(
            str(step.get("poolId"))
            for step in (route_plan if isinstance(route_plan, list) else [])
            if isinstance(step, dict) and step.get("poolId")
        )
        quote = SwapQuote(
            input_mint=str(data.get("inputMint") or input_mint),
            output_mint=str(data.get("outputMint") or output_mint),
            input_amount=to_int(data.get("inputAmount"), int(amount)),
            output_amount=to_int(data.get("outputAmount"), 0),
            other_amount_threshold=to_int(data.get("otherAmountThreshold"), 0),
            slippage_bps=to_int(data.get("slippageBps"), int(slippage_bps)),
            price_impact_pct=to_float(data.get("priceImpactPct"), 0.0),
            route_pool_ids=pool_ids,
            tx_version=tx_version,
            raw=payload,
        )
        log_event(
            self._logger,
            level="info",
            event="swap_quote_received",
            message="Swap quote received",
            quote=quote.compact(),
        )
        return quote

    async def build_transactions(
        self,
        *,
        quote: SwapQuote,
        priority_fee_micro_lamports: int,
        wallet: str,
        wrap_sol: bool,
        unwrap_sol: bool,
        input_account: str | None,
        output_account: str | None,
    ) -> list[bytes]:
        body: dict[str, Any] = {
            "computeUnitPriceMicroLamports": str(max(0, int(priority_fee_micro_lamports))),
            "swapResponse": quote.raw,
            "txVersion": quote.tx_version,
            "wallet": wallet,
            "wrapSol": wrap_sol,
            "unwrapSol": unwrap_sol,
        }
        if input_account:
            body["inputAccount"] = input_account
        if output_account:
            body["outputAccount"] = output_account

        payload = await self._request_json(
            "POST",
            f"{self._swap_host}/transaction/swap-base-in",
            operation="transaction build",
            json_body=body,
        )
        items = payload.get("data")
        if not isinstance(items, list) or not items:
            raise QuoteBuildError(f"Transaction build returned no transactions: {payload}")

        transactions: list[bytes] = []
        for index, item in enumerate(items):
            encoded = str(item.get("transaction") or "") if isinstance(item, dict) else ""
            if not encoded:
                raise QuoteBuildError(f"Transaction build item {index} has no payload.")
            try:
                transactions.append(base64.b64decode(encoded, validate=True))
            except (binascii.Error, ValueError) as error:
                raise QuoteBuildError(f"Transaction build item {index} is not base64: {error}") from error

        return transactions
