"""Stop-loss, take-profit, exposure caps and cooldown eligibility."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from dividend_value_system.config import RiskConfig
from dividend_value_system.ledger.history import TradeHistoryStore
from dividend_value_system.time_utils import Clock, elapsed_days, now_utc

from .snapshot import PortfolioSnapshot


@dataclass(frozen=True, slots=True)
class GateResult:
    allowed: bool
    reason: str


class RiskEvaluator:
    """
    Read-only checks against the trade ledger and a captured portfolio snapshot.

    Limit checks take the snapshot explicitly; callers pass the same snapshot
    to every check within one decision cycle.
    """

    def __init__(
        self,
        config: RiskConfig | None = None,
        history: TradeHistoryStore | None = None,
        clock: Clock = now_utc,
    ) -> None:
        self.config = config or RiskConfig()
        self.history = history or TradeHistoryStore(clock=clock)
        self.clock = clock

    def days_since_last_trade(self, symbol: str) -> float | None:
        last = self.history.last_trade_time(symbol)
        if last is None:
            return None
        return elapsed_days(self.clock(), last)

    def can_trade(self, symbol: str) -> bool:
        elapsed = self.days_since_last_trade(symbol)
        if elapsed is None:
            return True
        return elapsed >= self.config.cooldown_days

    def price_change(self, symbol: str, current_price: float) -> float | None:
        """Relative move of `current_price` from the last recorded trade."""
        last_price = self.history.last_price(symbol)
        if last_price is None or last_price <= 0:
            return None
        return (current_price - last_price) / last_price

    def check_stop_loss(self, symbol: str, current_price: float) -> bool:
        change = self.price_change(symbol, current_price)
        if change is None:
            return False
        return change <= -self.config.stop_loss_threshold

    def check_take_profit(self, symbol: str, current_price: float) -> bool:
        change = self.price_change(symbol, current_price)
        if change is None:
            return False
        return change >= self.config.take_profit_threshold

    def check_position_limit(self, snapshot: PortfolioSnapshot, symbol: str, incremental_amount: float) -> bool:
        if snapshot.total_value <= 0:
            return False
        ratio = (snapshot.position_value(symbol) + incremental_amount) / snapshot.total_value
        return ratio <= self.config.max_symbol_ratio

    def check_industry_limit(self, snapshot: PortfolioSnapshot, industry: str, incremental_amount: float) -> bool:
        if snapshot.total_value <= 0:
            return False
        ratio = (snapshot.industry_value(industry) + incremental_amount) / snapshot.total_value
        return ratio <= self.config.max_industry_ratio

    def gate(
        self,
        snapshot: PortfolioSnapshot,
        symbol: str,
        industry: str,
        incremental_amount: float,
        pending_industry_amount: float = 0.0,
    ) -> GateResult:
        """
        Cooldown, symbol cap and industry cap, in that order.

        `pending_industry_amount` is capital already committed to the industry
        earlier in the same cycle, which the frozen snapshot does not show.
        """
        if not self.can_trade(symbol):
            result = GateResult(False, "cooldown")
        elif not self.check_position_limit(snapshot, symbol, incremental_amount):
            result = GateResult(False, "position_limit")
        elif not self.check_industry_limit(snapshot, industry, incremental_amount + pending_industry_amount):
            result = GateResult(False, "industry_limit")
        else:
            result = GateResult(True, "ok")
        if not result.allowed:
            logger.info(
                "risk gate blocked {} ({}): amount={:.2f} total_value={:.2f}",
                symbol,
                result.reason,
                incremental_amount,
                snapshot.total_value,
            )
        return result
