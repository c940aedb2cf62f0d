from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest

from dividend_value_system.config import SystemConfig
from dividend_value_system.ledger import TradeHistoryStore
from dividend_value_system.providers import (
    BoundedCaller,
    InMemoryMarketData,
    InMemoryPositionBook,
    PaperOrderGateway,
    StaticIndustryClassifier,
)
from dividend_value_system.strategy import DecisionEngine

# 10:00 in Shanghai, well before the close window.
SESSION_MORNING = datetime(2026, 3, 2, 2, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = SESSION_MORNING) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@dataclass
class PaperWorld:
    clock: FakeClock
    market: InMemoryMarketData
    classifier: StaticIndustryClassifier
    book: InMemoryPositionBook
    gateway: PaperOrderGateway
    history: TradeHistoryStore
    caller: BoundedCaller
    config: SystemConfig = field(default_factory=SystemConfig)

    def listing(
        self,
        symbol: str,
        price: float = 10.0,
        industry: str = "banks",
        pb: float = 0.8,
        volume: float = 2e8,
        dividend_yield: float = 0.015,
        pe_percentile: float = 0.1,
        average_pb: float = 1.2,
    ) -> None:
        self.market.set_market(symbol, price=price, volume=volume)
        self.market.set_fundamentals(symbol, industry=industry, pb=pb, pe=8.0, dividend_yield=dividend_yield)
        self.classifier.industries[symbol] = industry
        self.classifier.pe_percentiles[symbol] = pe_percentile
        self.classifier.average_pbs.setdefault(industry, average_pb)

    def engine(self, universe: list[str] | None = None, **kwargs) -> DecisionEngine:
        if universe is not None:
            self.config.universe = list(universe)
        return DecisionEngine(
            self.config,
            self.market,
            self.gateway,
            self.book,
            self.classifier,
            history=self.history,
            caller=self.caller,
            clock=self.clock,
            **kwargs,
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def world(clock: FakeClock):
    market = InMemoryMarketData()
    classifier = StaticIndustryClassifier()
    book = InMemoryPositionBook(cash=1_000_000.0, market=market)
    gateway = PaperOrderGateway(market, book=book, clock=clock)
    caller = BoundedCaller()
    yield PaperWorld(
        clock=clock,
        market=market,
        classifier=classifier,
        book=book,
        gateway=gateway,
        history=TradeHistoryStore(clock=clock),
        caller=caller,
    )
    caller.shutdown()
