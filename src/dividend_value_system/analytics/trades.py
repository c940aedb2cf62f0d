"""Per-symbol and per-industry trade statistics from the ledger."""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger

from dividend_value_system.ledger.history import TradeHistoryStore
from dividend_value_system.risk.snapshot import PortfolioSnapshot
from dividend_value_system.types import Side, TradeRecord


@dataclass(frozen=True, slots=True)
class RoundTrip:
    symbol: str
    buy_time: datetime
    sell_time: datetime
    buy_price: float
    sell_price: float

    @property
    def holding_days(self) -> float:
        return (self.sell_time - self.buy_time).total_seconds() / 86_400.0

    @property
    def trade_return(self) -> float:
        return (self.sell_price - self.buy_price) / self.buy_price


@dataclass(frozen=True, slots=True)
class SymbolTradeStats:
    symbol: str
    total_trades: int = 0
    buy_count: int = 0
    sell_count: int = 0
    round_trips: int = 0
    avg_holding_days: float = np.nan
    avg_return: float = np.nan
    max_return: float = np.nan
    max_loss: float = np.nan
    win_rate: float = np.nan

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class IndustryTradeStats:
    industry: str
    symbols: tuple[str, ...]
    position_value: float
    position_ratio: float
    avg_return: float = np.nan
    contribution: float = np.nan

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["symbols"] = list(self.symbols)
        return out


def pair_round_trips(records: list[TradeRecord]) -> list[RoundTrip]:
    """
    Match each sell with the oldest unmatched buy of the same symbol.

    `records` may be in any order; they are replayed oldest first.
    """
    open_buys: dict[str, deque[TradeRecord]] = {}
    trips: list[RoundTrip] = []
    for record in sorted(records, key=lambda item: item.timestamp):
        queue = open_buys.setdefault(record.symbol, deque())
        if record.side == Side.BUY:
            queue.append(record)
        elif queue:
            buy = queue.popleft()
            if buy.price <= 0:
                continue
            trips.append(RoundTrip(record.symbol, buy.timestamp, record.timestamp, buy.price, record.price))
    return trips


class TradeAnalyzer:
    def __init__(self, history: TradeHistoryStore) -> None:
        self.history = history

    def symbol_stats(self, symbol: str) -> SymbolTradeStats:
        records = list(self.history.history(symbol))
        if not records:
            return SymbolTradeStats(symbol=symbol)
        buys = sum(1 for record in records if record.side == Side.BUY)
        trips = pair_round_trips(records)
        if not trips:
            return SymbolTradeStats(symbol, len(records), buys, len(records) - buys)

        returns = pd.Series([trip.trade_return for trip in trips], dtype=float)
        stats = SymbolTradeStats(
            symbol=symbol,
            total_trades=len(records),
            buy_count=buys,
            sell_count=len(records) - buys,
            round_trips=len(trips),
            avg_holding_days=float(np.mean([trip.holding_days for trip in trips])),
            avg_return=float(returns.mean()),
            max_return=float(returns.max()),
            max_loss=float(returns.min()),
            win_rate=float((returns > 0).mean()),
        )
        logger.debug(
            "trade stats for {}: trades={} round_trips={} avg_return={:.2%} win_rate={:.2%}",
            symbol,
            stats.total_trades,
            stats.round_trips,
            stats.avg_return,
            stats.win_rate,
        )
        return stats

    def industry_stats(self, industry: str, snapshot: PortfolioSnapshot) -> IndustryTradeStats:
        """Exposure and realized returns for an industry, from one captured snapshot."""
        members = tuple(sorted(s for s, code in snapshot.industries.items() if code == industry and s in snapshot.positions))
        value = snapshot.industry_value(industry)
        ratio = value / snapshot.total_value if snapshot.total_value > 0 else 0.0
        returns = [
            stats.avg_return
            for stats in (self.symbol_stats(symbol) for symbol in members)
            if stats.round_trips > 0
        ]
        if not returns:
            return IndustryTradeStats(industry, members, value, ratio)
        avg_return = float(np.mean(returns))
        return IndustryTradeStats(industry, members, value, ratio, avg_return, avg_return * ratio)

    def summary_frame(self) -> pd.DataFrame:
        rows = [self.symbol_stats(symbol).to_dict() for symbol in self.history.symbols()]
        if not rows:
            return pd.DataFrame(columns=list(SymbolTradeStats.__dataclass_fields__))
        return pd.DataFrame(rows).set_index("symbol")
