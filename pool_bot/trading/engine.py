from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from .errors import TransientFeedError
from .types import Decision, PendingSell, StrategyConfig, StrategyState

_HUNDRED = Decimal("100")


class DecisionEngine:
    """Threshold strategy for a single position with a debounced take-profit.

    ``evaluate`` never mutates its input; the returned state already reflects
    the emitted action, so committing it is the caller's decision.
    """

    def __init__(self, config: StrategyConfig | None = None) -> None:
        self.config = config or StrategyConfig()
        self._buy_factor = 1 - self.config.buy_drop_percent / _HUNDRED
        self._rise_factor = 1 + self.config.sell_rise_percent / _HUNDRED
        self._stop_factor = 1 - self.config.stop_loss_percent / _HUNDRED
        self._confirmation_ratio = self.config.confirmation_threshold_percent / _HUNDRED

    def evaluate(self, price: Decimal, state: StrategyState) -> Decision:
        if price is None or not price.is_finite() or price <= 0:
            raise TransientFeedError(f"Invalid pool price: {price}")

        state = self.track_extremes(price, state)

        pending = state.pending_sell
        if pending.active and state.has_position:
            deviation = abs(price - pending.target_price) / pending.target_price
            if deviation <= self._confirmation_ratio:
                ticks_count = pending.ticks_count + 1
                if ticks_count >= self.config.confirmation_ticks:
                    return Decision(
                        state=self._after_trade(price, entry_price=None),
                        action="sell",
                        reason="take_profit_confirmed",
                    )
                return Decision(
                    state=replace(state, pending_sell=replace(pending, ticks_count=ticks_count)),
                    action=None,
                    reason="take_profit_confirming",
                )

            state = replace(state, pending_sell=PendingSell())
            if price <= state.entry_price * self._stop_factor:
                return self._stop_loss(price)
            return Decision(state=state, action=None, reason="false_breakout")

        if pending.active:
            state = replace(state, pending_sell=PendingSell())

        if not state.has_position:
            if price <= state.last_high * self._buy_factor:
                return Decision(
                    state=self._after_trade(price, entry_price=price),
                    action="buy",
                    reason="drop_from_high",
                )
            return Decision(state=state, action=None, reason="idle")

        if price <= state.entry_price * self._stop_factor:
            return self._stop_loss(price)

        if price >= state.entry_price * self._rise_factor:
            return Decision(
                state=replace(
                    state,
                    pending_sell=PendingSell(active=True, target_price=price, ticks_count=0),
                ),
                action=None,
                reason="take_profit_pending",
            )

        return Decision(state=state, action=None, reason="holding")

    @staticmethod
    def track_extremes(price: Decimal, state: StrategyState) -> StrategyState:
        if state.last_high is None or state.last_low is None:
            return replace(state, last_high=price, last_low=price)
        if state.last_low <= price <= state.last_high:
            return state
        return replace(
            state,
            last_high=max(state.last_high, price),
            last_low=min(state.last_low, price),
        )

    @staticmethod
    def _after_trade(price: Decimal, *, entry_price: Decimal | None) -> StrategyState:
        # a trade re-seeds the reference extremes at the fill price
        return StrategyState(last_high=price, last_low=price, entry_price=entry_price)

    def _stop_loss(self, price: Decimal) -> Decision:
        return Decision(
            state=replace(self._after_trade(price, entry_price=None), cooldown_pending=True),
            action="sell",
            reason="stop_loss",
        )
