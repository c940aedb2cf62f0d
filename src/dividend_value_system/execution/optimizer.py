"""Advisory execution timing, quantity, price and cost analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import math
from typing import Any

from loguru import logger

from dividend_value_system.config import OptimizerConfig
from dividend_value_system.ledger.history import TradeHistoryStore
from dividend_value_system.providers.base import BoundedCaller, MarketDataProvider
from dividend_value_system.time_utils import Clock, now_utc
from dividend_value_system.types import Side

from .costs import TradeCostModel


@dataclass(frozen=True, slots=True)
class TradeTiming:
    symbol: str
    suggested_time: datetime
    suggested_price: float
    score: float
    expected_cost_saving: float
    price_score: float
    volume_score: float
    spread_score: float
    time_score: float


@dataclass(slots=True)
class TradeCostAnalysis:
    symbol: str
    commission: float
    stamp_duty: float
    transfer_fee: float
    slippage: float
    slippage_cost: float
    total_cost: float
    cost_ratio: float
    suggestions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "commission": self.commission,
            "stamp_duty": self.stamp_duty,
            "transfer_fee": self.transfer_fee,
            "slippage": self.slippage,
            "slippage_cost": self.slippage_cost,
            "total_cost": self.total_cost,
            "cost_ratio": self.cost_ratio,
            "suggestions": list(self.suggestions),
        }


def price_score(current_price: float, target_price: float) -> float:
    if target_price <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(current_price - target_price) / target_price * 10.0)


def volume_score(volume: float, quantity: float) -> float:
    if volume <= 0:
        return 0.0
    return max(0.0, 1.0 - quantity / volume * 5.0)


def spread_score(spread: float) -> float:
    return max(0.0, 1.0 - spread * 100.0)


def time_score(hours_since_last_trade: float | None) -> float:
    """1.0 without a recent trade; grows linearly to 1.0 over 24 hours."""
    if hours_since_last_trade is None:
        return 1.0
    return min(1.0, max(0.0, hours_since_last_trade / 24.0))


class CostTimingOptimizer:
    """
    Scores and shapes candidate orders from live quotes and recent trades.

    Output is advisory: the decision engine only uses it to shrink a
    quantity or to set a limit price, never to bypass a risk gate.
    """

    def __init__(
        self,
        market: MarketDataProvider,
        history: TradeHistoryStore,
        cost_model: TradeCostModel | None = None,
        config: OptimizerConfig | None = None,
        caller: BoundedCaller | None = None,
        data_timeout: float = 5.0,
        lot_size: int = 100,
        clock: Clock = now_utc,
    ) -> None:
        self.market = market
        self.history = history
        self.cost_model = cost_model or TradeCostModel()
        self.config = config or OptimizerConfig()
        self.caller = caller or BoundedCaller()
        self.data_timeout = data_timeout
        self.lot_size = lot_size
        self.clock = clock

    def _fetch(self, name: str, fn, symbol: str) -> Any:
        return self.caller.call(name, fn, symbol, timeout=self.data_timeout, symbol=symbol)

    def _hours_since_recent_trade(self, symbol: str) -> float | None:
        now = self.clock()
        cutoff = now - timedelta(days=self.config.recent_trade_days)
        last = self.history.last_trade_time(symbol)
        if last is None or last < cutoff:
            return None
        return (now - last).total_seconds() / 3600.0

    def expected_cost_saving(self, price: float, quantity: float) -> float:
        config = self.cost_model.config
        proportional = config.commission_rate + config.stamp_duty_rate + config.transfer_fee_rate
        return price * quantity * proportional * self.config.expected_saving_ratio

    def timing(self, symbol: str, target_price: float, quantity: float) -> TradeTiming:
        current_price = self._fetch("current_price", self.market.current_price, symbol)
        volume = self._fetch("current_volume", self.market.current_volume, symbol)
        spread = self._fetch("bid_ask_spread", self.market.bid_ask_spread, symbol)
        scores = (
            price_score(current_price, target_price),
            volume_score(volume, quantity),
            spread_score(spread),
            time_score(self._hours_since_recent_trade(symbol)),
        )
        timing = TradeTiming(
            symbol=symbol,
            suggested_time=self.clock(),
            suggested_price=current_price,
            score=sum(scores) / len(scores),
            expected_cost_saving=self.expected_cost_saving(current_price, quantity),
            price_score=scores[0],
            volume_score=scores[1],
            spread_score=scores[2],
            time_score=scores[3],
        )
        logger.debug("timing for {}: score={:.3f} price={:.4f}", symbol, timing.score, current_price)
        return timing

    def recommend_quantity(self, symbol: str, price: float, amount: float) -> int:
        if price <= 0:
            return 0
        theoretical = math.floor(amount / price)
        if theoretical <= 0:
            return 0
        volume = self._fetch("current_volume", self.market.current_volume, symbol)
        spread = self._fetch("bid_ask_spread", self.market.bid_ask_spread, symbol)
        quantity = float(theoretical)
        if volume > 0:
            quantity = min(quantity, math.floor(volume * self.config.max_volume_participation))
        if spread > self.config.slippage_threshold:
            quantity = math.floor(quantity * (1.0 - self.config.spread_quantity_shade))
        return int(quantity // self.lot_size * self.lot_size)

    def recommend_price(self, symbol: str, quantity: float, side: Side | str) -> float:
        side = Side(side)
        quote = self._fetch("quote", self.market.quote, symbol)
        volume = self._fetch("current_volume", self.market.current_volume, symbol)
        band = self.config.price_band
        if side == Side.BUY:
            price = min(quote.ask, quote.last * (1.0 + band))
        else:
            price = max(quote.bid, quote.last * (1.0 - band))
        if volume > 0 and abs(quantity) / volume > self.config.impact_threshold:
            markup = self.config.impact_markup
            price *= (1.0 + markup) if side == Side.BUY else (1.0 - markup)
        return price

    def analyze_cost(self, symbol: str, price: float, quantity: float, side: Side | str = Side.BUY) -> TradeCostAnalysis:
        side = Side(side)
        cost = self.cost_model.cost(side, price, quantity)
        current_price = self._fetch("current_price", self.market.current_price, symbol)
        slippage = abs(price - current_price) / current_price if current_price > 0 else 0.0
        slippage_cost = cost.amount * slippage
        total = cost.fees + slippage_cost
        cost_ratio = total / cost.amount if cost.amount > 0 else 0.0

        suggestions: list[str] = []
        config = self.cost_model.config
        if cost.amount * config.commission_rate < config.min_commission:
            suggestions.append(
                f"commission floor of {config.min_commission:.2f} applies; "
                "a larger order would use capital more efficiently"
            )
        if slippage > self.config.slippage_threshold:
            suggestions.append(
                f"slippage {slippage:.2%} exceeds {self.config.slippage_threshold:.2%}; "
                "adjust the price or wait for a better moment"
            )
        if cost_ratio > self.config.high_cost_ratio:
            suggestions.append(f"total cost ratio {cost_ratio:.2%} is high; review the execution approach")

        analysis = TradeCostAnalysis(
            symbol=symbol,
            commission=cost.commission,
            stamp_duty=cost.stamp_duty,
            transfer_fee=cost.transfer_fee,
            slippage=slippage,
            slippage_cost=slippage_cost,
            total_cost=total,
            cost_ratio=cost_ratio,
            suggestions=suggestions,
        )
        logger.info(
            "cost analysis for {}: total={:.2f} ratio={:.4%} suggestions={}",
            symbol,
            total,
            cost_ratio,
            len(suggestions),
        )
        return analysis
