from __future__ import annotations

from datetime import datetime, timezone

import pytest

from dividend_value_system.config import SystemConfig
from dividend_value_system.errors import InvalidConfiguration
from dividend_value_system.orchestration import build_system
from dividend_value_system.providers import (
    InMemoryMarketData,
    InMemoryPositionBook,
    PaperOrderGateway,
    StaticIndustryClassifier,
)
from dividend_value_system.strategy import Action


def test_invalid_configuration_fails_before_any_component_runs(world) -> None:
    config = SystemConfig.from_dict({"risk": {"max_symbol_ratio": 0.0}})
    with pytest.raises(InvalidConfiguration):
        build_system(config, world.market, world.gateway, world.book, world.classifier, clock=world.clock)


def test_assembled_system_runs_a_cycle_and_monitors_the_universe(world) -> None:
    world.listing("X")
    config = SystemConfig(universe=["X"])
    system = build_system(
        config, world.market, world.gateway, world.book, world.classifier,
        history=world.history, clock=world.clock,
    )
    try:
        report = system.engine.run_cycle("c1")
        alerts = system.monitor.tick()
    finally:
        system.shutdown()

    assert report.decision_for("X").action == Action.BUY
    assert system.monitor.symbols == ["X"]
    assert alerts == [] or all(alert.subject in ("X", None) for alert in alerts)
    assert system.analyzer.symbol_stats("X").buy_count == 1
    assert system.sweeper.instrument == "SHSE.204001"
    assert system.metrics.execution_metrics("decision_cycle").execution_count == 1


def test_session_close_sweeps_idle_cash_after_trading(clock) -> None:
    # 14:57 in Shanghai.
    clock.now = datetime(2026, 3, 2, 6, 57, tzinfo=timezone.utc)
    market = InMemoryMarketData()
    market.set_market("SHSE.204001", price=1.8, volume=1e9, spread=0.0, volatility=0.0)
    book = InMemoryPositionBook(cash=12_345.6, market=market)
    gateway = PaperOrderGateway(market, clock=clock)
    system = build_system(SystemConfig(), market, gateway, book, StaticIndustryClassifier(), clock=clock)
    try:
        first = system.engine.run_cycle("close-1")
        clock.advance(minutes=1)
        second = system.engine.run_cycle("close-2")
    finally:
        system.shutdown()

    assert first.sweep.lots == 12
    # 12 lots of 1000 plus the 5.00 minimum commission and 0.24 transfer fee.
    assert first.cash_after == pytest.approx(340.36)
    assert second.sweep is None
    assert [order.symbol for order in gateway.submitted] == ["SHSE.204001"]


def test_disabled_sweep_builds_no_sweeper(world) -> None:
    config = SystemConfig.from_dict({"sweep": {"enabled": False}})
    system = build_system(config, world.market, world.gateway, world.book, world.classifier, clock=world.clock)
    system.shutdown()
    assert system.sweeper is None
    assert system.engine.sweeper is None


def test_swept_repo_is_held_at_par_and_ignored_by_the_next_cycle(clock) -> None:
    clock.now = datetime(2026, 3, 2, 6, 57, tzinfo=timezone.utc)
    market = InMemoryMarketData()
    market.set_market("SHSE.204001", price=1.8, volume=1e9, spread=0.0, volatility=0.0)
    book = InMemoryPositionBook(cash=12_345.6, market=market)
    gateway = PaperOrderGateway(market, book=book, clock=clock, par_values={"SHSE.204001": 1_000.0})
    system = build_system(SystemConfig(), market, gateway, book, StaticIndustryClassifier(), clock=clock)
    try:
        close = system.engine.run_cycle("close")
        clock.advance(hours=19)
        morning = system.engine.run_cycle("morning")
    finally:
        system.shutdown()

    assert close.sweep.lots == 12
    assert book.account_cash().available == pytest.approx(close.cash_after)
    assert book.current_positions()["SHSE.204001"].market_value == pytest.approx(12_000.0)
    assert morning.decisions == []
    assert morning.sweep is None
    assert morning.cash_after == pytest.approx(340.36)
