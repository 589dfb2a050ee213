from __future__ import annotations

import unittest
from decimal import Decimal

from pool_bot.trading.engine import DecisionEngine
from pool_bot.trading.errors import TransientFeedError
from pool_bot.trading.types import PendingSell, StrategyConfig, StrategyState


def D(value: str) -> Decimal:
    return Decimal(value)


def _holding(entry: str = "85") -> StrategyState:
    return StrategyState(last_high=D(entry), last_low=D(entry), entry_price=D(entry))


def _confirming(target: str = "90.1", ticks: int = 0) -> StrategyState:
    return StrategyState(
        last_high=D(target),
        last_low=D("85"),
        entry_price=D("85"),
        pending_sell=PendingSell(active=True, target_price=D(target), ticks_count=ticks),
    )


class DecisionEngineScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = DecisionEngine(StrategyConfig())

    def test_first_observation_seeds_extremes_without_action(self) -> None:
        decision = self.engine.evaluate(D("100"), StrategyState())

        self.assertIsNone(decision.action)
        self.assertEqual(decision.state.last_high, D("100"))
        self.assertEqual(decision.state.last_low, D("100"))
        self.assertIsNone(decision.state.entry_price)

    def test_drop_from_high_buys(self) -> None:
        state = StrategyState(last_high=D("100"), last_low=D("100"))

        decision = self.engine.evaluate(D("85"), state)

        self.assertEqual(decision.action, "buy")
        self.assertEqual(decision.state.entry_price, D("85"))
        self.assertEqual(decision.state.last_high, D("85"))
        self.assertFalse(decision.state.pending_sell.active)

    def test_drop_short_of_threshold_does_not_buy(self) -> None:
        state = StrategyState(last_high=D("100"), last_low=D("100"))

        decision = self.engine.evaluate(D("86.01"), state)

        self.assertIsNone(decision.action)
        self.assertIsNone(decision.state.entry_price)

    def test_confirmed_take_profit_sells_on_second_tick(self) -> None:
        first = self.engine.evaluate(D("90.1"), _holding())
        self.assertIsNone(first.action)
        self.assertEqual(
            first.state.pending_sell,
            PendingSell(active=True, target_price=D("90.1"), ticks_count=0),
        )
        self.assertEqual(first.state.entry_price, D("85"))

        second = self.engine.evaluate(D("91"), first.state)
        self.assertIsNone(second.action)
        self.assertEqual(second.state.pending_sell.ticks_count, 1)
        self.assertTrue(second.state.pending_sell.active)

        third = self.engine.evaluate(D("90.5"), second.state)
        self.assertEqual(third.action, "sell")
        self.assertEqual(third.reason, "take_profit_confirmed")
        self.assertIsNone(third.state.entry_price)
        self.assertFalse(third.state.pending_sell.active)
        self.assertFalse(third.state.cooldown_pending)

    def test_false_breakout_cancels_pending_sell_and_keeps_position(self) -> None:
        decision = self.engine.evaluate(D("105"), _confirming())

        self.assertIsNone(decision.action)
        self.assertEqual(decision.reason, "false_breakout")
        self.assertFalse(decision.state.pending_sell.active)
        self.assertEqual(decision.state.entry_price, D("85"))

    def test_stop_loss_sells_immediately_and_marks_cooldown(self) -> None:
        decision = self.engine.evaluate(D("78.2"), _holding())

        self.assertEqual(decision.action, "sell")
        self.assertEqual(decision.reason, "stop_loss")
        self.assertIsNone(decision.state.entry_price)
        self.assertTrue(decision.state.cooldown_pending)
        self.assertFalse(decision.state.pending_sell.active)

    def test_crash_during_confirmation_still_stops_out(self) -> None:
        decision = self.engine.evaluate(D("70"), _confirming())

        self.assertEqual(decision.action, "sell")
        self.assertEqual(decision.reason, "stop_loss")
        self.assertTrue(decision.state.cooldown_pending)

    def test_custom_confirmation_ticks(self) -> None:
        engine = DecisionEngine(StrategyConfig(confirmation_ticks=3))
        state = _confirming(ticks=1)

        decision = engine.evaluate(D("90.2"), state)

        self.assertIsNone(decision.action)
        self.assertEqual(decision.state.pending_sell.ticks_count, 2)


class DecisionEnginePropertyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = DecisionEngine()

    def test_repeated_price_while_idle_is_a_fixed_point(self) -> None:
        seeded = self.engine.evaluate(D("100"), StrategyState()).state

        first = self.engine.evaluate(D("100"), seeded)
        second = self.engine.evaluate(D("100"), first.state)

        self.assertIsNone(first.action)
        self.assertIsNone(second.action)
        self.assertEqual(first.state, seeded)
        self.assertEqual(second.state, seeded)

    def test_entry_stays_unset_until_a_buy(self) -> None:
        state = StrategyState()
        prices = ["100", "101", "99", "104", "97", "92", "95", "89.44"]
        for raw in prices:
            decision = self.engine.evaluate(D(raw), state)
            if decision.action == "buy":
                self.assertEqual(decision.state.entry_price, D(raw))
                self.assertEqual(raw, "89.44")
                break
            self.assertIsNone(decision.state.entry_price)
            state = decision.state
        else:
            self.fail("expected the final drop from the 104 high to trigger a buy")

    def test_running_high_tracks_the_maximum(self) -> None:
        state = StrategyState()
        for raw in ["10", "12", "11", "10.5"]:
            state = self.engine.evaluate(D(raw), state).state

        self.assertEqual(state.last_high, D("12"))
        self.assertEqual(state.last_low, D("10"))

    def test_buy_reseeds_extremes_at_fill_price(self) -> None:
        state = StrategyState()
        for raw in ["10", "12", "11"]:
            state = self.engine.evaluate(D(raw), state).state

        decision = self.engine.evaluate(D("9"), state)

        self.assertEqual(decision.action, "buy")
        self.assertEqual(decision.state.last_high, D("9"))
        self.assertEqual(decision.state.last_low, D("9"))

    def test_out_of_band_tick_resets_confirmation_without_selling(self) -> None:
        state = _confirming(ticks=1)

        decision = self.engine.evaluate(D("80"), state)

        self.assertIsNone(decision.action)
        self.assertFalse(decision.state.pending_sell.active)
        self.assertEqual(decision.state.pending_sell.ticks_count, 0)

    def test_stop_loss_and_activation_are_exclusive(self) -> None:
        for raw in ["70", "78.2", "80", "85", "90.1", "120"]:
            decision = self.engine.evaluate(D(raw), _holding())
            stop_loss = decision.action == "sell" and decision.state.cooldown_pending
            activated = decision.state.pending_sell.active
            self.assertFalse(stop_loss and activated, raw)

    def test_pending_sell_implies_open_position(self) -> None:
        state = StrategyState()
        for raw in ["100", "85", "90.1", "91", "105", "95", "96", "78", "100"]:
            state = self.engine.evaluate(D(raw), state).state
            if state.pending_sell.active:
                self.assertIsNotNone(state.entry_price)

    def test_does_not_mutate_input_state(self) -> None:
        state = _holding()

        self.engine.evaluate(D("78.2"), state)

        self.assertEqual(state, _holding())

    def test_non_positive_price_is_a_transient_feed_error(self) -> None:
        for raw in ["0", "-1", "NaN"]:
            with self.assertRaises(TransientFeedError):
                self.engine.evaluate(D(raw), _holding())


if __name__ == "__main__":
    unittest.main()
