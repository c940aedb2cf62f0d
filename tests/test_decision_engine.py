from __future__ import annotations

from datetime import timedelta

import pytest

from dividend_value_system.errors import CycleAborted
from dividend_value_system.execution import CostTimingOptimizer
from dividend_value_system.risk import PortfolioSnapshot
from dividend_value_system.strategy import Action, PositionStage
from dividend_value_system.types import OrderType, Side


def test_undervalued_dividend_stock_gets_first_batch_order(world) -> None:
    world.listing("X", price=10.0, pb=0.8, volume=2e8, dividend_yield=0.015)
    engine = world.engine(["X"])

    report = engine.run_cycle("c1")

    decision = report.decision_for("X")
    assert decision.action == Action.BUY
    assert decision.stage == PositionStage.BATCH_BUYING
    assert decision.quantity == 300
    assert len(world.gateway.submitted) == 1
    assert engine.batches.get("X").completed_batches == 1
    assert world.history.last_price("X") == 10.0


def test_rerunning_a_cycle_does_not_duplicate_orders(world) -> None:
    world.listing("X")
    engine = world.engine(["X"])

    first = engine.run_cycle("c1")
    second = engine.run_cycle("c1")

    assert second.decision_for("X") == first.decision_for("X")
    assert len(world.gateway.submitted) == 1
    assert engine.batches.get("X").completed_batches == 1


def test_batches_are_paced_by_cooldown_and_complete_into_held(world) -> None:
    world.listing("X", price=10.0)
    engine = world.engine(["X"])

    counters = []
    engine.run_cycle("c1")
    counters.append(engine.batches.get("X").completed_batches)

    blocked = engine.run_cycle("c1-retry").decision_for("X")
    assert blocked.action == Action.SKIP
    assert blocked.reason == "cooldown"

    world.clock.advance(days=5)
    second = engine.run_cycle("c2").decision_for("X")
    counters.append(engine.batches.get("X").completed_batches)
    assert second.action == Action.BUY
    assert second.quantity == 300

    world.clock.advance(days=5)
    third = engine.run_cycle("c3").decision_for("X")
    assert third.action == Action.BUY
    assert third.quantity == 400
    assert third.stage == PositionStage.HELD
    assert engine.batches.get("X") is None

    assert counters == [1, 2]
    assert len(world.gateway.submitted) == 3
    assert world.book.current_positions()["X"].quantity == 1000

    world.clock.advance(days=5)
    fourth = engine.run_cycle("c4").decision_for("X")
    assert fourth.action == Action.HOLD
    assert len(world.gateway.submitted) == 3


def test_stop_loss_sells_full_available_position(world) -> None:
    world.listing("Y", price=89.0, industry="energy", pb=0.7)
    world.book.set_position("Y", 100, cost_basis=100.0)
    world.history.record("Y", 100.0, 100, Side.BUY, timestamp=world.clock() - timedelta(days=10))
    engine = world.engine([])
    assert engine.risk.check_stop_loss("Y", 89.0)

    decision = engine.run_cycle("c1").decision_for("Y")

    assert decision.action == Action.SELL
    assert decision.stage == PositionStage.SOLD
    assert decision.quantity == 100
    assert decision.reason.startswith("stop_loss")
    assert "Y" not in world.book.current_positions()
    assert world.history.last_record("Y").side == Side.SELL


def test_pb_back_at_industry_average_triggers_exit_even_with_low_pe(world) -> None:
    world.listing("Z", price=10.0, industry="utilities", pb=2.1, average_pb=2.0, pe_percentile=0.05)
    world.book.set_position("Z", 500, cost_basis=10.0)
    engine = world.engine([])

    decision = engine.run_cycle("c1").decision_for("Z")

    assert decision.action == Action.SELL
    assert "industry utilities average" in decision.reason


def test_high_pe_percentile_triggers_exit(world) -> None:
    world.listing("P", price=10.0, pb=0.9, average_pb=1.2, pe_percentile=0.75)
    world.book.set_position("P", 200, cost_basis=10.0)
    engine = world.engine([])

    decision = engine.run_cycle("c1").decision_for("P")

    assert decision.action == Action.SELL
    assert "pe percentile" in decision.reason


def test_held_position_without_exit_condition_is_kept(world) -> None:
    world.listing("H", price=10.0, pb=0.9, average_pb=1.2, pe_percentile=0.3)
    world.book.set_position("H", 200, cost_basis=10.0)
    engine = world.engine(["H"])

    decision = engine.run_cycle("c1").decision_for("H")

    assert decision.action == Action.HOLD
    assert world.gateway.submitted == []


def test_position_limit_blocks_entry_without_state_change(world) -> None:
    world.book.set_cash(20_000.0)
    world.listing("X", price=10.0)
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.SKIP
    assert decision.reason == "position_limit"
    assert engine.batches.get("X") is None
    assert world.gateway.submitted == []


def test_industry_limit_counts_existing_holdings(world) -> None:
    world.listing("B1", price=10.0, industry="banks", pb=0.9, pe_percentile=0.1)
    world.book.set_position("B1", 29_800, cost_basis=10.0)
    world.book.set_cash(702_000.0)
    world.listing("X", price=10.0, industry="banks")
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.SKIP
    assert decision.reason == "industry_limit"


def test_industry_limit_counts_buys_earlier_in_the_same_cycle(world) -> None:
    world.listing("B1", price=10.0, industry="banks", pb=0.9, pe_percentile=0.1)
    world.book.set_position("B1", 29_500, cost_basis=10.0)
    world.book.set_cash(705_000.0)
    world.listing("X1", price=10.0, industry="banks")
    world.listing("X2", price=10.0, industry="banks")
    engine = world.engine(["X1", "X2"])

    report = engine.run_cycle("c1")

    assert report.decision_for("X1").action == Action.BUY
    assert report.decision_for("X2").action == Action.SKIP
    assert report.decision_for("X2").reason == "industry_limit"


def test_batch_below_one_lot_is_a_no_op(world) -> None:
    world.listing("X", price=50.0)
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.HOLD
    assert decision.reason == "batch below minimum lot"
    assert engine.batches.get("X") is None
    assert world.gateway.submitted == []


def test_symbol_failing_fundamentals_is_not_bought(world) -> None:
    world.listing("X", pb=1.3)
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.SKIP
    assert decision.stage == PositionStage.NOT_HELD
    assert world.gateway.submitted == []


def test_reentry_after_halving_overrides_fundamentals(world) -> None:
    world.listing("R", price=9.0, pb=1.5, dividend_yield=0.0)
    world.history.record("R", 20.0, 100, Side.SELL, timestamp=world.clock() - timedelta(days=30))
    engine = world.engine(["R"])

    decision = engine.run_cycle("c1").decision_for("R")

    assert decision.action == Action.BUY
    assert "re-entry" in decision.reason


def test_reentry_requires_the_drop_even_when_fundamentals_pass(world) -> None:
    world.listing("R", price=11.0, pb=0.8)
    world.history.record("R", 20.0, 100, Side.SELL, timestamp=world.clock() - timedelta(days=30))
    engine = world.engine(["R"])

    decision = engine.run_cycle("c1").decision_for("R")

    assert decision.action == Action.SKIP
    assert decision.reason.startswith("re-entry")


def test_rejected_order_does_not_advance_batch(world) -> None:
    world.listing("X")
    world.gateway.reject_symbols.add("X")
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.REJECTED
    assert engine.batches.get("X") is None
    assert world.history.history("X") == ()

    world.gateway.reject_symbols.clear()
    assert engine.run_cycle("c2").decision_for("X").action == Action.BUY


def test_fill_timeout_is_treated_as_rejection(world) -> None:
    world.listing("X")
    world.gateway.timeout_symbols.add("X")
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.REJECTED
    assert engine.batches.get("X") is None


def test_gateway_failure_is_isolated_to_one_symbol(world) -> None:
    world.listing("A")
    world.listing("B", industry="utilities")
    world.gateway.error_symbols.add("A")
    engine = world.engine(["A", "B"])

    report = engine.run_cycle("c1")

    assert report.decision_for("A").action == Action.ERROR
    assert report.decision_for("A").stage == PositionStage.NOT_HELD
    assert report.decision_for("B").action == Action.BUY


def test_missing_market_data_skips_only_that_symbol(world) -> None:
    world.listing("A")
    world.listing("B", industry="utilities")
    world.market.mark_unavailable("A")
    engine = world.engine(["A", "B"])

    report = engine.run_cycle("c1")

    assert report.decision_for("A").action == Action.SKIP
    assert "data unavailable" in report.decision_for("A").reason
    assert report.decision_for("B").action == Action.BUY


def test_partial_fill_advances_batch_by_filled_amount(world) -> None:
    world.listing("X", price=10.0)
    world.gateway.partial_fill_ratio["X"] = 0.5
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")
    state = engine.batches.get("X")

    assert decision.quantity == 150
    assert state.completed_batches == 1
    assert state.deployed_amount == pytest.approx(1500.0)
    assert state.next_batch_amount() == pytest.approx(4250.0)


def test_sell_proceeds_fund_entries_in_the_same_cycle(world) -> None:
    world.listing("Y", price=89.0, industry="energy", pb=0.7)
    world.book.set_position("Y", 10_000, cost_basis=100.0)
    world.book.set_cash(1_000.0)
    world.history.record("Y", 100.0, 10_000, Side.BUY, timestamp=world.clock() - timedelta(days=10))
    world.listing("X", price=10.0, industry="banks")
    engine = world.engine(["X"])

    report = engine.run_cycle("c1")

    actions = [(d.symbol, d.action) for d in report.decisions]
    assert actions == [("Y", Action.SELL), ("X", Action.BUY)]


def test_entry_without_cash_is_skipped(world) -> None:
    world.listing("Y", price=100.0, industry="energy", pb=0.7)
    world.book.set_position("Y", 10_000, cost_basis=100.0)
    world.book.set_cash(1_000.0)
    world.listing("X", price=10.0, industry="banks")
    engine = world.engine(["X"])

    decision = engine.run_cycle("c1").decision_for("X")

    assert decision.action == Action.SKIP
    assert decision.reason == "insufficient cash"


def test_unreadable_account_aborts_cycle(world) -> None:
    world.listing("X")
    world.book.unavailable = True
    engine = world.engine(["X"])

    with pytest.raises(CycleAborted):
        engine.run_cycle("c1")
    assert world.gateway.submitted == []


def test_stage_of_reports_lifecycle(world) -> None:
    world.listing("X")
    engine = world.engine(["X"])
    engine.run_cycle("c1")

    snapshot = PortfolioSnapshot.capture(world.book.current_positions(), world.book.account_cash(), {})
    assert engine.stage_of("X", snapshot) == PositionStage.BATCH_BUYING
    assert engine.stage_of("NEW", snapshot) == PositionStage.NOT_HELD


def _optimizer(world) -> CostTimingOptimizer:
    return CostTimingOptimizer(world.market, world.history, caller=world.caller, clock=world.clock)


def test_buy_is_sent_as_limit_order_at_advised_price(world) -> None:
    world.listing("X", price=10.0)
    engine = world.engine(["X"], optimizer=_optimizer(world))
    advised = engine.limit_price("X", 300, Side.BUY)

    decision = engine.run_cycle("c1").decision_for("X")

    handle = world.gateway.submitted[0]
    assert advised == pytest.approx(10.0025)
    assert (handle.order_type, handle.limit_price) == (OrderType.LIMIT, pytest.approx(advised))
    assert decision.action == Action.BUY
    assert decision.price == pytest.approx(advised)


def test_exit_is_sent_as_limit_order_at_advised_price(world) -> None:
    world.listing("Y", price=89.0, industry="energy", pb=0.7)
    world.book.set_position("Y", 100, cost_basis=100.0)
    world.history.record("Y", 100.0, 100, Side.BUY, timestamp=world.clock() - timedelta(days=10))
    engine = world.engine([], optimizer=_optimizer(world))

    decision = engine.run_cycle("c1").decision_for("Y")

    handle = world.gateway.submitted[0]
    assert handle.side == Side.SELL
    assert handle.order_type == OrderType.LIMIT
    assert handle.limit_price == pytest.approx(89.0 * (1 - 0.0005 / 2))
    assert decision.action == Action.SELL


def test_market_order_without_execution_advice(world) -> None:
    world.listing("X")
    engine = world.engine(["X"])
    engine.run_cycle("c1")
    handle = world.gateway.submitted[0]
    assert (handle.order_type, handle.limit_price) == (OrderType.MARKET, None)
