from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from dotenv import load_dotenv

from pool_bot.bot_runtime import AppSettings, bootstrap_dependencies, run_trading_loop, setup_logger
from pool_bot.common import guarded_call, log_event
from pool_bot.trading import (
    DecisionEngine,
    DryRunSwapExecutor,
    JitoBlockEngineClient,
    LiveSwapExecutor,
    RaydiumPoolWatcher,
    RaydiumSwapClient,
    SolanaWallet,
    StrategyConfig,
    SwapExecutor,
)


def build_executor(app_settings: AppSettings, logger: logging.Logger) -> SwapExecutor:
    swap_client = RaydiumSwapClient(
        logger=logger,
        base_host=app_settings.raydium_base_host,
        swap_host=app_settings.raydium_swap_host,
        timeout_seconds=app_settings.http_timeout_seconds,
    )
    if app_settings.dry_run:
        return DryRunSwapExecutor(
            logger=logger,
            swap_client=swap_client,
            slippage_bps=app_settings.slippage_bps,
            tx_version=app_settings.tx_version,
        )

    return LiveSwapExecutor(
        logger=logger,
        wallet=SolanaWallet(
            logger=logger,
            rpc_url=app_settings.solana_rpc_url,
            private_key=app_settings.private_key,
            timeout_seconds=app_settings.http_timeout_seconds,
        ),
        swap_client=swap_client,
        jito_client=JitoBlockEngineClient(
            logger=logger,
            block_engine_url=app_settings.jito_block_engine_url,
        ),
        slippage_bps=app_settings.slippage_bps,
        tx_version=app_settings.tx_version,
        tip_lamports=app_settings.jito_tip_lamports,
        buy_settle_seconds=app_settings.buy_settle_seconds,
        relay_send_max_attempts=app_settings.relay_send_max_attempts,
        relay_retry_backoff_seconds=app_settings.relay_retry_backoff_seconds,
        http_timeout_seconds=app_settings.http_timeout_seconds,
    )


async def main() -> None:
    load_dotenv()
    app_settings = AppSettings.from_env()
    logger = setup_logger(app_settings.log_level)
    strategy_config = StrategyConfig.from_env()

    if not app_settings.token_mint:
        raise SystemExit("TOKEN_MINT is required.")

    watcher = RaydiumPoolWatcher(
        logger=logger,
        rpc_url=app_settings.solana_rpc_url,
        pool_address=app_settings.pool_address,
        timeout_seconds=app_settings.http_timeout_seconds,
    )
    executor = build_executor(app_settings, logger)
    engine = DecisionEngine(strategy_config)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_shutdown(sig: signal.Signals) -> None:
        log_event(
            logger,
            level="info",
            event="shutdown_signal_received",
            message="Shutdown signal received",
            signal=sig.name,
        )
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, request_shutdown, sig)

    await bootstrap_dependencies(
        logger=logger,
        stop_event=stop_event,
        app_settings=app_settings,
        watcher=watcher,
        executor=executor,
    )

    log_event(
        logger,
        level="info",
        event="bot_started",
        message="Bot process started",
        pool=app_settings.pool_address,
        mint=app_settings.token_mint,
        dry_run=app_settings.dry_run,
        commit_policy=app_settings.commit_policy,
        watch_interval_seconds=app_settings.watch_interval_seconds,
        strategy={
            "buy_drop_percent": str(strategy_config.buy_drop_percent),
            "sell_rise_percent": str(strategy_config.sell_rise_percent),
            "stop_loss_percent": str(strategy_config.stop_loss_percent),
            "confirmation_threshold_percent": str(strategy_config.confirmation_threshold_percent),
            "confirmation_ticks": strategy_config.confirmation_ticks,
        },
    )

    try:
        await run_trading_loop(
            logger=logger,
            stop_event=stop_event,
            app_settings=app_settings,
            watcher=watcher,
            engine=engine,
            executor=executor,
        )
    finally:
        await guarded_call(
            watcher.close,
            logger=logger,
            event="shutdown_watcher_close_failed",
            message="Failed to close watcher during shutdown",
        )
        await guarded_call(
            executor.close,
            logger=logger,
            event="shutdown_executor_close_failed",
            message="Failed to close executor during shutdown",
        )
        log_event(logger, level="info", event="shutdown_completed", message="Shutdown completed")


if __name__ == "__main__":
    asyncio.run(main())
