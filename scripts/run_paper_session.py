"""Run the dividend value strategy against in-memory paper collaborators."""

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np

from dividend_value_system.config import SystemConfig, load_config
from dividend_value_system.logs import setup_logging
from dividend_value_system.monitoring import AlertRouter
from dividend_value_system.orchestration import LoopConfig, MonitorLoop, StrategyLoop, build_system
from dividend_value_system.providers import (
    InMemoryMarketData,
    InMemoryPositionBook,
    PaperOrderGateway,
    StaticIndustryClassifier,
)
from dividend_value_system.strategy import select_candidates

INDUSTRIES = ["banks", "utilities", "energy", "transport"]


def make_paper_market(symbols: list[str], seed: int = 7) -> tuple[InMemoryMarketData, StaticIndustryClassifier]:
    rng = np.random.default_rng(seed)
    market = InMemoryMarketData()
    industries: dict[str, str] = {}
    pe_percentiles: dict[str, float] = {}
    for i, symbol in enumerate(symbols):
        industry = INDUSTRIES[i % len(INDUSTRIES)]
        industries[symbol] = industry
        pe_percentiles[symbol] = float(rng.uniform(0.05, 0.9))
        market.set_market(
            symbol,
            price=float(rng.uniform(3.0, 30.0)),
            volume=float(rng.uniform(5e7, 5e8)),
            spread=float(rng.uniform(0.0002, 0.002)),
            volatility=float(rng.uniform(0.01, 0.04)),
        )
        market.set_fundamentals(
            symbol,
            industry=industry,
            pb=float(rng.uniform(0.5, 1.6)),
            pe=float(rng.uniform(4.0, 20.0)),
            dividend_yield=float(rng.uniform(0.0, 0.07)),
        )
    market.set_market("SHSE.204001", price=1.8, volume=1e9, spread=0.0, volatility=0.0)
    classifier = StaticIndustryClassifier(
        industries=industries,
        average_pbs={industry: 1.2 for industry in INDUSTRIES},
        pe_percentiles=pe_percentiles,
    )
    return market, classifier


def main() -> None:
    parser = argparse.ArgumentParser(description="Run paper decision cycles with a background monitor.")
    parser.add_argument("--config", default=None, help="YAML system config; defaults are used when omitted.")
    parser.add_argument("--cycles", type=int, default=3)
    parser.add_argument("--cash", type=float, default=1_000_000.0)
    parser.add_argument("--symbols", type=int, default=12)
    parser.add_argument("--alerts-file", default="outputs/paper_alerts.jsonl")
    args = parser.parse_args()

    config = load_config(args.config) if args.config else SystemConfig()
    if not config.universe:
        config.universe = [f"SHSE.6000{i:02d}" for i in range(args.symbols)]
    setup_logging(config.logging)

    market, classifier = make_paper_market(config.universe)
    book = InMemoryPositionBook(cash=args.cash, market=market)
    gateway = PaperOrderGateway(
        market,
        book=book,
        audit_path=Path("outputs/paper_orders.jsonl"),
        par_values={config.sweep.instrument: config.sweep.lot_amount},
    )
    system = build_system(config, market, gateway, book, classifier)

    candidates = select_candidates(market.fundamental_snapshot(config.universe), config.strategy)
    print(f"candidates passing the fundamental filter: {candidates}")

    system.monitor.subscribe(AlertRouter.with_log_and_file(args.alerts_file))
    monitor_loop = MonitorLoop(system.monitor, LoopConfig(interval_seconds=0.5))
    monitor_loop.start()
    strategy_loop = StrategyLoop(
        system.engine,
        LoopConfig(interval_seconds=0.0, max_iterations=max(args.cycles, 1)),
        monitor=system.monitor,
    )
    try:
        for report in strategy_loop.run_forever():
            print(report.to_dict())
    finally:
        monitor_loop.stop(timeout=5.0)
        system.shutdown()

    print(system.analyzer.summary_frame())
    print(system.monitor.status().to_dict())
    print(system.metrics.api_metrics())


if __name__ == "__main__":
    main()
