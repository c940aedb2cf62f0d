from __future__ import annotations

import pytest

from dividend_value_system.config import MonitorConfig, RiskConfig
from dividend_value_system.ledger import TradeHistoryStore
from dividend_value_system.monitoring import (
    AlertCategory,
    AlertSeverity,
    MarketAlertKind,
    MemoryAlertSink,
    RealTimeMonitor,
    RiskAlertKind,
    SystemAlertKind,
)
from dividend_value_system.performance import PerformanceMetricsAggregator, ResourceMetrics
from dividend_value_system.providers import (
    BoundedCaller,
    InMemoryMarketData,
    InMemoryPositionBook,
    StaticIndustryClassifier,
)
from dividend_value_system.risk import PortfolioSnapshot, RiskEvaluator
from dividend_value_system.types import AccountCash, Position, Side


def quiet_resources() -> ResourceMetrics:
    return ResourceMetrics(cpu_percent=5.0, memory_mb=128.0, thread_count=4)


def busy_resources() -> ResourceMetrics:
    return ResourceMetrics(cpu_percent=95.0, memory_mb=128.0, thread_count=4)


@pytest.fixture
def market() -> InMemoryMarketData:
    market = InMemoryMarketData()
    market.set_market("X", price=10.0, volume=2e8, volatility=0.01)
    return market


@pytest.fixture
def metrics() -> PerformanceMetricsAggregator:
    return PerformanceMetricsAggregator(resource_sampler=quiet_resources)


@pytest.fixture
def caller(metrics):
    caller = BoundedCaller(metrics=metrics)
    yield caller
    caller.shutdown()


@pytest.fixture
def history(clock) -> TradeHistoryStore:
    return TradeHistoryStore(clock=clock)


@pytest.fixture
def monitor(market, metrics, caller, history, clock) -> RealTimeMonitor:
    return RealTimeMonitor(
        MonitorConfig(),
        market,
        RiskEvaluator(RiskConfig(), history, clock=clock),
        metrics=metrics,
        caller=caller,
        symbols=["X"],
        clock=clock,
    )


def test_first_observation_only_seeds_baseline(monitor, market) -> None:
    sink = MemoryAlertSink()
    monitor.subscribe(sink)

    assert monitor.check_market("X") is None
    market.set_market("X", price=10.2, volume=2e8, volatility=0.01)
    assert monitor.check_market("X") is None
    assert sink.alerts == []


def test_price_jump_raises_market_warning(monitor, market, clock) -> None:
    sink = MemoryAlertSink()
    monitor.subscribe(sink)
    monitor.check_market("X")

    market.set_market("X", price=10.6, volume=2e8, volatility=0.01)
    alert = monitor.check_market("X")

    assert alert.kind == MarketAlertKind.PRICE_ANOMALY
    assert alert.category == AlertCategory.MARKET
    assert alert.severity == AlertSeverity.WARNING
    assert alert.subject == "X"
    assert alert.payload["price_change"] == pytest.approx(0.06)
    assert alert.timestamp == clock()
    assert sink.alerts == [alert]


def test_price_takes_priority_over_volume_and_volatility(monitor, market) -> None:
    monitor.check_market("X")
    market.set_market("X", price=11.0, volume=9e8, volatility=0.08)
    alert = monitor.check_market("X")
    assert alert.kind == MarketAlertKind.PRICE_ANOMALY


def test_volume_surge_is_reported(monitor, market) -> None:
    monitor.check_market("X")
    market.set_market("X", price=10.0, volume=5e8, volatility=0.01)
    alert = monitor.check_market("X")
    assert alert.kind == MarketAlertKind.VOLUME_ANOMALY
    assert alert.severity == AlertSeverity.INFO
    assert alert.payload["volume_ratio"] == pytest.approx(2.5)


def test_volatility_shift_is_reported(monitor, market) -> None:
    monitor.check_market("X")
    market.set_market("X", price=10.0, volume=2e8, volatility=0.04)
    alert = monitor.check_market("X")
    assert alert.kind == MarketAlertKind.VOLATILITY_ANOMALY


def test_second_anomaly_within_interval_is_suppressed(monitor, market, metrics, clock) -> None:
    sink = MemoryAlertSink()
    monitor.subscribe(sink)
    monitor.check_market("X")

    market.set_market("X", price=11.0, volume=2e8, volatility=0.01)
    assert monitor.check_market("X") is not None
    clock.advance(seconds=30)
    market.set_market("X", price=12.0, volume=2e8, volatility=0.01)
    assert monitor.check_market("X") is None

    assert len(sink.alerts) == 1
    assert metrics.suppressed_alert_count("X") == 1

    clock.advance(seconds=30)
    market.set_market("X", price=13.0, volume=2e8, volatility=0.01)
    assert monitor.check_market("X") is not None
    assert len(sink.alerts) == 2


def test_failing_subscriber_does_not_block_others(monitor, market) -> None:
    def broken(alert) -> None:
        raise RuntimeError("pager offline")

    sink = MemoryAlertSink()
    monitor.subscribe(broken)
    monitor.subscribe(sink)
    monitor.check_market("X")
    market.set_market("X", price=11.0, volume=2e8, volatility=0.01)

    assert monitor.check_market("X") is not None
    assert len(sink.alerts) == 1


def test_unsubscribed_callback_stops_receiving(monitor, market, clock) -> None:
    sink = MemoryAlertSink()
    unsubscribe = monitor.subscribe(sink)
    monitor.check_market("X")
    unsubscribe()

    market.set_market("X", price=11.0, volume=2e8, volatility=0.01)
    assert monitor.check_market("X") is not None
    assert sink.alerts == []
    assert monitor.status().subscribers == 0


def test_stop_loss_breach_is_critical(monitor, market, history) -> None:
    history.record("X", 100.0, 100, Side.BUY)
    market.set_market("X", price=89.0, volume=2e8)

    alert = monitor.check_risk("X")

    assert alert.kind == RiskAlertKind.STOP_LOSS
    assert alert.category == AlertCategory.RISK
    assert alert.severity == AlertSeverity.CRITICAL
    assert alert.payload["last_trade_price"] == 100.0


def test_take_profit_is_reported(monitor, market, history) -> None:
    history.record("X", 10.0, 100, Side.BUY)
    market.set_market("X", price=12.5, volume=2e8)
    assert monitor.check_risk("X").kind == RiskAlertKind.TAKE_PROFIT


def test_oversized_position_raises_limit_alert(monitor) -> None:
    snapshot = PortfolioSnapshot.capture(
        {"X": Position("X", quantity=20_000, cost_basis=10.0, market_value=200_000.0, available_quantity=20_000)},
        AccountCash(800_000.0),
        {"X": "banks"},
    )
    alert = monitor.check_risk("X", snapshot)
    assert alert.kind == RiskAlertKind.POSITION_LIMIT
    assert alert.severity == AlertSeverity.ERROR


def test_market_and_risk_alerts_share_the_symbol_throttle(monitor, market, history) -> None:
    monitor.check_market("X")
    history.record("X", 10.0, 100, Side.BUY)
    market.set_market("X", price=8.0, volume=2e8)

    assert monitor.check_market("X") is not None
    assert monitor.check_risk("X") is None


def test_cpu_pressure_raises_system_alert(market, history, clock) -> None:
    metrics = PerformanceMetricsAggregator(resource_sampler=busy_resources)
    monitor = RealTimeMonitor(MonitorConfig(), market, RiskEvaluator(history=history, clock=clock), metrics=metrics, clock=clock)
    try:
        alert = monitor.check_system()
    finally:
        monitor.caller.shutdown()

    assert alert.kind == SystemAlertKind.PERFORMANCE
    assert alert.category == AlertCategory.SYSTEM
    assert alert.subject is None
    assert alert.throttle_key == "system"


def test_low_api_success_rate_raises_network_alert(monitor, metrics) -> None:
    for n in range(10):
        metrics.record_api_call("current_price", 0.01, success=n >= 2)
    alert = monitor.check_system()
    assert alert.kind == SystemAlertKind.NETWORK
    assert alert.payload["success_rate"] == pytest.approx(0.8)


def test_tick_checks_every_watched_symbol(market, metrics, caller, history, clock) -> None:
    market.set_market("Y", price=20.0, volume=2e8, volatility=0.01)
    book = InMemoryPositionBook(cash=800_000.0, market=market)
    book.set_position("Y", 10_000, cost_basis=20.0)
    classifier = StaticIndustryClassifier(industries={"X": "banks", "Y": "energy"})
    monitor = RealTimeMonitor(
        MonitorConfig(),
        market,
        RiskEvaluator(history=history, clock=clock),
        positions=book,
        classifier=classifier,
        metrics=metrics,
        caller=caller,
        symbols=["X"],
        clock=clock,
    )
    monitor.watch("Y", "X")
    sink = MemoryAlertSink()
    monitor.subscribe(sink)

    first = monitor.tick()
    clock.advance(seconds=5)
    market.set_market("X", price=11.0, volume=2e8, volatility=0.01)
    second = monitor.tick()

    assert [a.kind for a in first] == [RiskAlertKind.POSITION_LIMIT]
    assert [(a.subject, a.kind) for a in second] == [("X", MarketAlertKind.PRICE_ANOMALY)]
    status = monitor.status()
    assert status.monitored_symbols == 2
    assert status.ticks == 2
    assert status.alerts_emitted == 2
    assert status.last_tick_at == clock()
    assert status.to_dict()["subscribers"] == 1


def test_tick_survives_missing_data(monitor, market) -> None:
    market.mark_unavailable("X")
    # The failed quote calls drag the API success rate down for the system check.
    assert [a.kind for a in monitor.tick()] == [SystemAlertKind.NETWORK]
    market.mark_unavailable("X", False)
    assert monitor.tick() == []
    assert monitor.status().ticks == 2


def test_unwatch_forgets_baseline(monitor, market) -> None:
    monitor.check_market("X")
    monitor.unwatch("X")
    assert monitor.symbols == []
    market.set_market("X", price=20.0, volume=2e8)
    assert monitor.check_market("X") is None
