"""Wire configuration and collaborators into a runnable strategy system."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from dividend_value_system.analytics import TradeAnalyzer
from dividend_value_system.config import SystemConfig
from dividend_value_system.execution import CashSweeper, CostTimingOptimizer, TradeCostModel
from dividend_value_system.ledger import TradeHistoryStore
from dividend_value_system.monitoring import RealTimeMonitor
from dividend_value_system.performance import PerformanceMetricsAggregator
from dividend_value_system.providers import (
    BoundedCaller,
    IndustryClassifier,
    MarketDataProvider,
    OrderGateway,
    PositionProvider,
)
from dividend_value_system.risk import RiskEvaluator
from dividend_value_system.strategy import BatchBook, DecisionEngine
from dividend_value_system.time_utils import Clock, now_utc


@dataclass(slots=True)
class TradingSystem:
    config: SystemConfig
    metrics: PerformanceMetricsAggregator
    history: TradeHistoryStore
    risk: RiskEvaluator
    cost_model: TradeCostModel
    optimizer: CostTimingOptimizer
    engine: DecisionEngine
    monitor: RealTimeMonitor
    analyzer: TradeAnalyzer
    sweeper: CashSweeper | None = None

    def shutdown(self) -> None:
        self.engine.caller.shutdown()
        self.monitor.caller.shutdown()


def build_system(
    config: SystemConfig,
    market: MarketDataProvider,
    gateway: OrderGateway,
    positions: PositionProvider,
    classifier: IndustryClassifier,
    metrics: PerformanceMetricsAggregator | None = None,
    history: TradeHistoryStore | None = None,
    clock: Clock = now_utc,
) -> TradingSystem:
    """
    Validate config and assemble every component.

    InvalidConfiguration is raised here, before any cycle can run. The monitor
    gets its own caller pool so its ticks never queue behind order calls.
    """
    config.validate()
    metrics = metrics or PerformanceMetricsAggregator()
    history = history or TradeHistoryStore(clock=clock)
    engine_caller = BoundedCaller(metrics=metrics)
    monitor_caller = BoundedCaller(metrics=metrics)

    risk = RiskEvaluator(config.risk, history, clock=clock)
    cost_model = TradeCostModel(config.costs)
    optimizer = CostTimingOptimizer(
        market,
        history,
        cost_model=cost_model,
        config=config.optimizer,
        caller=engine_caller,
        data_timeout=config.strategy.data_timeout_seconds,
        lot_size=config.strategy.lot_size,
        clock=clock,
    )
    sweeper = None
    if config.sweep.enabled:
        sweeper = CashSweeper(
            config.sweep,
            market,
            gateway,
            caller=engine_caller,
            data_timeout=config.strategy.data_timeout_seconds,
            order_timeout=config.strategy.order_timeout_seconds,
        )
    engine = DecisionEngine(
        config,
        market,
        gateway,
        positions,
        classifier,
        history=history,
        risk=risk,
        cost_model=cost_model,
        optimizer=optimizer,
        sweeper=sweeper,
        batches=BatchBook(),
        caller=engine_caller,
        clock=clock,
    )
    monitor = RealTimeMonitor(
        config.monitor,
        market,
        risk,
        positions=positions,
        classifier=classifier,
        metrics=metrics,
        caller=monitor_caller,
        symbols=config.universe,
        cash_equivalents=sorted(engine.cash_equivalents),
        clock=clock,
    )
    logger.info(
        "system assembled: universe={} batch_count={} sweep={}",
        len(config.universe),
        config.strategy.batch_count,
        sweeper.instrument if sweeper else "disabled",
    )
    return TradingSystem(
        config=config,
        metrics=metrics,
        history=history,
        risk=risk,
        cost_model=cost_model,
        optimizer=optimizer,
        engine=engine,
        monitor=monitor,
        analyzer=TradeAnalyzer(history),
        sweeper=sweeper,
    )
