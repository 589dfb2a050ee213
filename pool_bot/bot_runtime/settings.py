from __future__ import annotations

import os
from dataclasses import dataclass

from pool_bot.trading.swap_api import RAYDIUM_BASE_HOST, RAYDIUM_SWAP_HOST
from pool_bot.trading.types import (
    CommitPolicy,
    TxVersion,
    normalize_commit_policy,
    normalize_tx_version,
    to_bool,
    to_float,
    to_int,
)

DEFAULT_JITO_BLOCK_ENGINE_URL = "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles"


@dataclass(slots=True, frozen=True)
class AppSettings:
    watch_interval_seconds: float
    error_backoff_seconds: float
    solana_rpc_url: str
    private_key: str
    dry_run: bool
    pool_address: str
    token_mint: str
    trade_amount_lamports: int
    slippage_bps: int
    tx_version: TxVersion
    raydium_base_host: str
    raydium_swap_host: str
    jito_block_engine_url: str
    jito_tip_lamports: int
    buy_settle_seconds: float
    stop_loss_cooldown_seconds: float
    commit_policy: CommitPolicy
    relay_send_max_attempts: int
    relay_retry_backoff_seconds: float
    http_timeout_seconds: float
    log_level: str

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            watch_interval_seconds=max(0.0, to_float(os.getenv("WATCH_INTERVAL_SECONDS"), 0.1)),
            error_backoff_seconds=max(0.0, to_float(os.getenv("ERROR_BACKOFF_SECONDS"), 0.1)),
            solana_rpc_url=os.getenv("SOLANA_RPC_URL", "").strip(),
            private_key=os.getenv("PRIVATE_KEY", ""),
            dry_run=to_bool(os.getenv("DRY_RUN"), True),
            pool_address=os.getenv("POOL_ADDRESS", "").strip(),
            token_mint=os.getenv("TOKEN_MINT", "").strip(),
            trade_amount_lamports=max(1, to_int(os.getenv("TRADE_AMOUNT_LAMPORTS"), 1_000_000_000)),
            slippage_bps=max(1, to_int(os.getenv("SLIPPAGE_BPS"), 2000)),
            tx_version=normalize_tx_version(os.getenv("TX_VERSION", "LEGACY")),
            raydium_base_host=os.getenv("RAYDIUM_BASE_HOST", RAYDIUM_BASE_HOST).strip(),
            raydium_swap_host=os.getenv("RAYDIUM_SWAP_HOST", RAYDIUM_SWAP_HOST).strip(),
            jito_block_engine_url=os.getenv("JITO_BLOCK_ENGINE_URL", DEFAULT_JITO_BLOCK_ENGINE_URL).strip(),
            jito_tip_lamports=max(0, to_int(os.getenv("JITO_TIP_LAMPORTS"), 20_000_000)),
            buy_settle_seconds=max(0.0, to_float(os.getenv("BUY_SETTLE_SECONDS"), 1.5)),
            stop_loss_cooldown_seconds=max(0.0, to_float(os.getenv("STOP_LOSS_COOLDOWN_SECONDS"), 5.0)),
            commit_policy=normalize_commit_policy(os.getenv("COMMIT_POLICY", "confirmed")),
            relay_send_max_attempts=max(1, to_int(os.getenv("RELAY_SEND_MAX_ATTEMPTS"), 1)),
            relay_retry_backoff_seconds=max(
                0.0,
                to_float(os.getenv("RELAY_RETRY_BACKOFF_SECONDS"), 0.8),
            ),
            http_timeout_seconds=max(1.0, to_float(os.getenv("HTTP_TIMEOUT_SECONDS"), 8.0)),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip() or "INFO",
        )
