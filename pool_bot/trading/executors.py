from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import aiohttp

from pool_bot.common import gather_or_cancel, guarded_call, log_event

from .atomic import BundleBuilder, JitoBlockEngineClient, RelayTransportError, SignedBundle
from .errors import ExecutionError, MissingAccountError, RelayRejectionError
from .swap_api import RaydiumSwapClient
from .types import (
    SOL_MINT,
    ExecutionResult,
    PriorityFeeEstimate,
    SwapQuote,
    TradeAction,
    TradeRequest,
    TxVersion,
)
from .wallet import SolanaWallet

T = TypeVar("T")


def resolve_swap_mints(action: TradeAction, mint: str) -> tuple[str, str]:
    if action == "buy":
        return SOL_MINT, mint
    return mint, SOL_MINT


class DryRunSwapExecutor:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        swap_client: RaydiumSwapClient,
        slippage_bps: int = 2000,
        tx_version: TxVersion = "LEGACY",
    ) -> None:
        self._logger = logger
        self._swap_client = swap_client
        self._slippage_bps = slippage_bps
        self._tx_version = tx_version
        self._simulated_holding: int | None = None

    async def connect(self) -> None:
        await self._swap_client.connect()

    async def close(self) -> None:
        await self._swap_client.close()

    async def healthcheck(self) -> None:
        await self._swap_client.fetch_priority_fee()

    async def execute(self, request: TradeRequest) -> ExecutionResult:
        input_mint, output_mint = resolve_swap_mints(request.action, request.mint)
        amount = request.amount if request.action == "buy" else self._simulated_holding

        quote: SwapQuote | None = None
        fee: PriorityFeeEstimate | None = None
        if amount:
            fee, quote = await gather_or_cancel(
                self._swap_client.fetch_priority_fee(),
                self._swap_client.compute_swap(
                    input_mint=input_mint,
                    output_mint=output_mint,
                    amount=amount,
                    slippage_bps=self._slippage_bps,
                    tx_version=self._tx_version,
                ),
            )

        self._simulated_holding = quote.output_amount if request.action == "buy" and quote else None

        result = ExecutionResult(
            status="dry_run",
            action=request.action,
            input_mint=input_mint,
            output_mint=output_mint,
            amount_in=amount,
            expected_amount_out=quote.output_amount if quote else None,
            bundle_id=None,
            tx_signatures=[],
            metadata={
                "quote": quote.compact() if quote else None,
                "priority_fee_micro_lamports": fee.very_high if fee else None,
            },
        )
        log_event(
            self._logger,
            level="info",
            event="order_dry_run",
            message="Dry-run trade simulated; nothing was signed or sent",
            **result.to_dict(),
        )
        return result


class LiveSwapExecutor:
    """Quote, build, sign and submit one trade as a single Jito bundle."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        wallet: SolanaWallet,
        swap_client: RaydiumSwapClient,
        jito_client: JitoBlockEngineClient,
        bundle_builder: BundleBuilder | None = None,
        slippage_bps: int = 2000,
        tx_version: TxVersion = "LEGACY",
        tip_lamports: int = 20_000_000,
        buy_settle_seconds: float = 1.5,
        relay_send_max_attempts: int = 1,
        relay_retry_backoff_seconds: float = 0.8,
        http_timeout_seconds: float = 8.0,
    ) -> None:
        self._logger = logger
        self._wallet = wallet
        self._swap_client = swap_client
        self._jito_client = jito_client
        self._bundle_builder = bundle_builder or BundleBuilder(logger=logger)
        self._slippage_bps = max(1, int(slippage_bps))
        self._tx_version = tx_version
        self._tip_lamports = max(0, int(tip_lamports))
        self._buy_settle_seconds = max(0.0, float(buy_settle_seconds))
        self._relay_send_max_attempts = max(1, int(relay_send_max_attempts))
        self._relay_retry_backoff_seconds = max(0.0, float(relay_retry_backoff_seconds))
        self._http_timeout_seconds = http_timeout_seconds
        self._http_session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        await self._wallet.connect()
        await self._swap_client.connect()
        if self._http_session is None:
            timeout = aiohttp.ClientTimeout(total=self._http_timeout_seconds)
            self._http_session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        await guarded_call(
            self._wallet.close,
            logger=self._logger,
            event="wallet_close_failed",
            message="Failed to close wallet RPC client",
        )
        await guarded_call(
            self._swap_client.close,
            logger=self._logger,
            event="swap_client_close_failed",
            message="Failed to close swap API session",
        )
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def healthcheck(self) -> None:
        await self._wallet.healthcheck()

    async def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            await self.connect()
        if self._http_session is None:
            raise RuntimeError("HTTP session is not initialized for bundle submission.")
        return self._http_session

    @staticmethod
    async def _wallet_read(action: Callable[[], Awaitable[T]], *, what: str) -> T:
        try:
            return await action()
        except asyncio.CancelledError:
            raise
        except ExecutionError:
            raise
        except Exception as error:
            raise ExecutionError(f"Wallet read failed ({what}): {error}") from error

    async def _submit_bundle(self, bundle: SignedBundle) -> str | None:
        session = await self._session()

        last_error: Exception | None = None
        for attempt in range(1, self._relay_send_max_attempts + 1):
            try:
                return await self._jito_client.send_bundle(session=session, bundle=bundle)
            except RelayTransportError as error:
                last_error = error
                if attempt >= self._relay_send_max_attempts:
                    break
                jitter = random.uniform(0.0, self._relay_retry_backoff_seconds * 0.25)
                backoff = min(3.0, self._relay_retry_backoff_seconds * attempt + jitter)
                log_event(
                    self._logger,
                    level="warning",
                    event="jito_bundle_submit_retry",
                    message="Jito bundle submission did not reach the relay; resending the whole bundle",
                    attempt=attempt,
                    max_attempts=self._relay_send_max_attempts,
                    backoff_seconds=round(backoff, 3),
                    error=str(error),
                )
                await asyncio.sleep(backoff)

        raise RelayRejectionError(f"Jito bundle submission exhausted retries: {last_error}")

    async def execute(self, request: TradeRequest) -> ExecutionResult:
        input_mint, output_mint = resolve_swap_mints(request.action, request.mint)

        token_accounts = await self._wallet_read(self._wallet.fetch_token_accounts, what="token accounts")
        input_account = token_accounts.get(input_mint)
        output_account = token_accounts.get(output_mint)

        if input_account is None and input_mint != SOL_MINT:
            raise MissingAccountError(f"No token account holds the input mint {input_mint}.")

        if request.action == "sell":
            amount = await self._wallet_read(
                lambda: self._wallet.fetch_token_balance(input_account),
                what="token balance",
            )
            if amount <= 0:
                raise MissingAccountError(f"Token account {input_account} holds no {input_mint} to sell.")
            log_event(
                self._logger,
                level="info",
                event="sell_amount_resolved",
                message="Selling the entire token holding",
                mint=input_mint,
                amount=amount,
            )
        else:
            if request.amount is None or request.amount <= 0:
                raise ValueError("A buy request requires a positive amount.")
            amount = int(request.amount)

        fee, quote = await gather_or_cancel(
            self._swap_client.fetch_priority_fee(),
            self._swap_client.compute_swap(
                input_mint=input_mint,
                output_mint=output_mint,
                amount=amount,
                slippage_bps=self._slippage_bps,
                tx_version=self._tx_version,
            ),
        )

        unsigned_transactions = await self._swap_client.build_transactions(
            quote=quote,
            priority_fee_micro_lamports=fee.very_high,
            wallet=str(self._wallet.pubkey),
            wrap_sol=input_mint == SOL_MINT and output_mint != SOL_MINT,
            unwrap_sol=output_mint == SOL_MINT and input_mint != SOL_MINT,
            input_account=None if input_mint == SOL_MINT else str(input_account),
            output_account=(
                None if output_mint == SOL_MINT or output_account is None else str(output_account)
            ),
        )

        tip_account = None
        if self._tip_lamports > 0:
            tip_account = await self._jito_client.select_tip_account(session=await self._session())

        recent_blockhash = await self._wallet_read(self._wallet.fetch_latest_blockhash, what="latest blockhash")
        bundle = self._bundle_builder.build(
            unsigned_transactions=unsigned_transactions,
            signer=self._wallet.keypair,
            recent_blockhash=recent_blockhash,
            tx_version=self._tx_version,
            tip_account=tip_account,
            tip_lamports=self._tip_lamports,
        )

        bundle_id = await self._submit_bundle(bundle)

        if request.action == "buy" and self._buy_settle_seconds > 0:
            await asyncio.sleep(self._buy_settle_seconds)

        return ExecutionResult(
            status="submitted",
            action=request.action,
            input_mint=input_mint,
            output_mint=output_mint,
            amount_in=amount,
            expected_amount_out=quote.output_amount,
            bundle_id=bundle_id,
            tx_signatures=list(bundle.tx_signatures),
            metadata={
                "quote": quote.compact(),
                "priority_fee_micro_lamports": fee.very_high,
                "bundle": bundle.to_dict(),
                "sol_balance_lamports": await self._read_sol_balance(),
            },
        )

    async def _read_sol_balance(self) -> int | None:
        try:
            return await self._wallet.fetch_sol_balance()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            log_event(
                self._logger,
                level="warning",
                event="sol_balance_read_failed",
                message="Bundle submitted but the wallet SOL balance could not be read",
                error=str(error),
            )
            return None
