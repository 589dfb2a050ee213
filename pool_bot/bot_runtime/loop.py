from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal

from pool_bot.common import guarded_call, log_event, wait_with_stop
from pool_bot.trading import (
    Decision,
    DecisionEngine,
    ExecutionError,
    ExecutionResult,
    JitoBundleRateLimitError,
    PriceFeed,
    StrategyState,
    SwapExecutor,
    TradeRequest,
    TransientFeedError,
)

from .settings import AppSettings


@dataclass(slots=True, frozen=True)
class TickOutcome:
    state: StrategyState
    price: Decimal
    decision: Decision
    result: ExecutionResult | None = None
    error: str | None = None
    retry_after_seconds: float | None = None

    @property
    def trade_failed(self) -> bool:
        return self.decision.action is not None and self.result is None


async def bootstrap_dependencies(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    watcher: PriceFeed,
    executor: SwapExecutor,
) -> None:
    while not stop_event.is_set():
        try:
            await watcher.connect()
            await executor.connect()
            await watcher.healthcheck()
            await executor.healthcheck()
            return
        except Exception as error:
            log_event(
                logger,
                level="exception",
                event="bootstrap_error",
                message="Dependency bootstrap failed",
                error=str(error),
            )
            await guarded_call(
                watcher.close,
                logger=logger,
                event="bootstrap_watcher_close_failed",
                message="Failed to close watcher during bootstrap retry",
            )
            await guarded_call(
                executor.close,
                logger=logger,
                event="bootstrap_executor_close_failed",
                message="Failed to close executor during bootstrap retry",
            )

            await wait_with_stop(stop_event, max(1.0, app_settings.error_backoff_seconds))

    raise RuntimeError("Shutdown requested before dependencies were initialized.")


def _state_after_failed_trade(
    *,
    app_settings: AppSettings,
    prior: StrategyState,
    price: Decimal,
    decision: Decision,
) -> StrategyState:
    if app_settings.commit_policy == "optimistic":
        return decision.state
    return DecisionEngine.track_extremes(price, prior)


async def process_tick(
    *,
    logger: logging.Logger,
    app_settings: AppSettings,
    watcher: PriceFeed,
    engine: DecisionEngine,
    executor: SwapExecutor,
    state: StrategyState,
) -> TickOutcome:
    pool_info = await watcher.fetch_pool_info()
    price = pool_info.token_price
    decision = engine.evaluate(price, state)

    log_event(
        logger,
        level="info" if decision.reason not in {"idle", "holding"} else "debug",
        event="strategy_evaluated",
        message="Strategy evaluated",
        price=str(price),
        reason=decision.reason,
        action=decision.action,
        entry_price=str(decision.state.entry_price) if decision.state.entry_price is not None else None,
        pending_sell=decision.state.pending_sell.active,
        pending_sell_ticks=decision.state.pending_sell.ticks_count,
    )

    if decision.action is None:
        return TickOutcome(state=decision.state, price=price, decision=decision)

    request = TradeRequest(
        action=decision.action,
        mint=app_settings.token_mint,
        amount=app_settings.trade_amount_lamports if decision.action == "buy" else None,
    )
    retry_after_seconds: float | None = None
    try:
        result = await executor.execute(request)
    except asyncio.CancelledError:
        raise
    except Exception as error:
        if isinstance(error, JitoBundleRateLimitError):
            retry_after_seconds = error.retry_after_seconds
        log_event(
            logger,
            level="warning" if isinstance(error, ExecutionError) else "exception",
            event="order_execution_failed",
            message="Trade execution failed; strategy state was not advanced"
            if app_settings.commit_policy == "confirmed"
            else "Trade execution failed; strategy state was advanced optimistically",
            action=decision.action,
            reason=decision.reason,
            price=str(price),
            error_type=type(error).__name__,
            error=str(error),
        )
        return TickOutcome(
            state=_state_after_failed_trade(
                app_settings=app_settings,
                prior=state,
                price=price,
                decision=decision,
            ),
            price=price,
            decision=decision,
            error=str(error),
            retry_after_seconds=retry_after_seconds,
        )

    log_event(
        logger,
        level="info",
        event="order_executed",
        message="Bought" if decision.action == "buy" else "Sold",
        price=str(price),
        reason=decision.reason,
        sol_balance=result.metadata.get("sol_balance_lamports"),
        execution=result.to_dict(),
    )
    return TickOutcome(state=decision.state, price=price, decision=decision, result=result)


async def run_trading_loop(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    app_settings: AppSettings,
    watcher: PriceFeed,
    engine: DecisionEngine,
    executor: SwapExecutor,
    initial_state: StrategyState | None = None,
) -> StrategyState:
    state = initial_state or StrategyState()

    while not stop_event.is_set():
        delay_seconds = app_settings.watch_interval_seconds
        try:
            outcome = await process_tick(
                logger=logger,
                app_settings=app_settings,
                watcher=watcher,
                engine=engine,
                executor=executor,
                state=state,
            )
            state = outcome.state

            if outcome.trade_failed:
                delay_seconds = max(
                    delay_seconds,
                    app_settings.error_backoff_seconds,
                    outcome.retry_after_seconds or 0.0,
                )

            if state.cooldown_pending:
                log_event(
                    logger,
                    level="info",
                    event="stop_loss_cooldown",
                    message="Stop-loss triggered; pausing before evaluating new entries",
                    cooldown_seconds=app_settings.stop_loss_cooldown_seconds,
                )
                await wait_with_stop(stop_event, app_settings.stop_loss_cooldown_seconds)
                state = replace(state, cooldown_pending=False)
        except asyncio.CancelledError:
            raise
        except TransientFeedError as error:
            delay_seconds = max(delay_seconds, app_settings.error_backoff_seconds)
            log_event(
                logger,
                level="warning",
                event="price_read_failed",
                message="Pool price unavailable this tick",
                error=str(error),
            )
        except Exception as error:
            delay_seconds = max(delay_seconds, app_settings.error_backoff_seconds)
            log_event(
                logger,
                level="exception",
                event="main_loop_error",
                message="Trading loop iteration failed",
                error=str(error),
            )

        await wait_with_stop(stop_event, delay_seconds)

    return state
