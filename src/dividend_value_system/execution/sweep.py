"""End-of-session sweep of idle cash into overnight treasury repo."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
import threading

from loguru import logger

from dividend_value_system.config import SweepConfig
from dividend_value_system.errors import DataUnavailable
from dividend_value_system.providers.base import BoundedCaller, MarketDataProvider, OrderGateway, execute_order
from dividend_value_system.time_utils import in_close_window, trading_date
from dividend_value_system.types import FilledOrder, Side


@dataclass(frozen=True, slots=True)
class SweepResult:
    instrument: str
    trading_date: str
    lots: int
    amount: float
    rate: float
    fill: FilledOrder | None = None


class CashSweeper:
    """Buys whole lots of the configured repo tenor once per trading day."""

    def __init__(
        self,
        config: SweepConfig,
        market: MarketDataProvider,
        gateway: OrderGateway,
        caller: BoundedCaller | None = None,
        data_timeout: float = 5.0,
        order_timeout: float = 10.0,
    ) -> None:
        self.config = config
        # Resolve eagerly so an unsupported tenor fails at startup.
        self.instrument = config.instrument
        self.market = market
        self.gateway = gateway
        self.caller = caller or BoundedCaller()
        self.data_timeout = data_timeout
        self.order_timeout = order_timeout
        self._lock = threading.Lock()
        self._last_sweep_date: str | None = None

    @property
    def last_sweep_date(self) -> str | None:
        return self._last_sweep_date

    def repo_rate(self) -> float:
        """Annualized repo rate quoted as price / 100."""
        price = self.caller.call(
            "repo_price",
            self.market.current_price,
            self.instrument,
            timeout=self.data_timeout,
            symbol=self.instrument,
        )
        if price <= 0:
            raise DataUnavailable(f"no valid repo price for {self.instrument}", symbol=self.instrument)
        return price / 100.0

    def lots_for(self, amount: float) -> int:
        if amount <= 0:
            return 0
        return int(math.floor(amount / self.config.lot_amount))

    def due(self, now: datetime) -> bool:
        if not self.config.enabled:
            return False
        if not in_close_window(now, self.config.session_close, self.config.window_minutes, self.config.exchange_timezone):
            return False
        return self._last_sweep_date != trading_date(now, self.config.exchange_timezone)

    def sweep(self, amount: float, now: datetime) -> SweepResult | None:
        """
        Place the sweep order if it is due; return None when nothing was attempted.

        OrderRejected propagates and leaves the day open for a retry.
        """
        with self._lock:
            if not self.due(now):
                return None
            day = trading_date(now, self.config.exchange_timezone)
            lots = self.lots_for(amount)
            if lots <= 0:
                logger.info("cash sweep skipped: {:.2f} idle cash is below one lot of {:.2f}", amount, self.config.lot_amount)
                self._last_sweep_date = day
                return SweepResult(self.instrument, day, 0, 0.0, 0.0)
            rate = self.repo_rate()
            fill = execute_order(self.caller, self.gateway, self.instrument, lots, Side.BUY, self.order_timeout)
            self._last_sweep_date = day
            swept = fill.quantity * self.config.lot_amount
            logger.info(
                "cash sweep into {}: lots={} amount={:.2f} rate={:.4%} left_as_cash={:.2f}",
                self.instrument,
                int(fill.quantity),
                swept,
                rate,
                amount - swept,
            )
            return SweepResult(self.instrument, day, int(fill.quantity), swept, rate, fill)
