"""Real-time market, risk and system-health monitoring with alert fan-out."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import threading
from typing import Any, Callable, Iterable

from loguru import logger

from dividend_value_system.config import MonitorConfig
from dividend_value_system.errors import DataUnavailable
from dividend_value_system.ledger.keyed_state import KeyedStateStore
from dividend_value_system.performance import PerformanceMetricsAggregator
from dividend_value_system.providers.base import (
    BoundedCaller,
    IndustryClassifier,
    MarketDataProvider,
    PositionProvider,
    capture_positions,
)
from dividend_value_system.risk.evaluator import RiskEvaluator
from dividend_value_system.risk.snapshot import PortfolioSnapshot, build_snapshot
from dividend_value_system.time_utils import Clock, now_utc

from .alerts import (
    Alert,
    MarketAlertKind,
    RiskAlertKind,
    SystemAlertKind,
    make_alert,
)
from .throttle import AlertThrottle

Subscriber = Callable[[Alert], None]


@dataclass(slots=True)
class _Observation:
    price: float
    volume: float
    volatility: float


@dataclass(frozen=True, slots=True)
class MonitorStatus:
    monitored_symbols: int
    subscribers: int
    alerts_emitted: int
    alerts_suppressed: int
    ticks: int
    started_at: datetime | None
    last_tick_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "monitored_symbols": self.monitored_symbols,
            "subscribers": self.subscribers,
            "alerts_emitted": self.alerts_emitted,
            "alerts_suppressed": self.alerts_suppressed,
            "ticks": self.ticks,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
        }


class RealTimeMonitor:
    """
    Observes market moves, risk breaches and process health; never trades.

    Each symbol's last observation lives under its own lock. Alerts pass the
    per-subject throttle before being pushed to every subscriber; a failing
    subscriber is logged and skipped.
    """

    def __init__(
        self,
        config: MonitorConfig,
        market: MarketDataProvider,
        risk: RiskEvaluator,
        positions: PositionProvider | None = None,
        classifier: IndustryClassifier | None = None,
        metrics: PerformanceMetricsAggregator | None = None,
        throttle: AlertThrottle | None = None,
        caller: BoundedCaller | None = None,
        symbols: Iterable[str] = (),
        cash_equivalents: Iterable[str] = (),
        clock: Clock = now_utc,
    ) -> None:
        self.config = config
        self.market = market
        self.risk = risk
        self.positions = positions
        self.classifier = classifier
        self.metrics = metrics or PerformanceMetricsAggregator()
        self.throttle = throttle or AlertThrottle(
            config.alert_interval_seconds,
            config.max_alerts_per_hour,
            metrics=self.metrics,
        )
        self.caller = caller or BoundedCaller(metrics=self.metrics)
        self.clock = clock
        self._lock = threading.Lock()
        self._symbols: list[str] = list(dict.fromkeys(symbols))
        self.cash_equivalents = frozenset(cash_equivalents)
        self._subscribers: list[Subscriber] = []
        self._observations: KeyedStateStore[_Observation] = KeyedStateStore()
        self._emitted = 0
        self._ticks = 0
        self._started_at: datetime | None = None
        self._last_tick_at: datetime | None = None

    # Registration

    def watch(self, *symbols: str) -> None:
        with self._lock:
            for symbol in symbols:
                if symbol not in self._symbols:
                    self._symbols.append(symbol)

    def unwatch(self, symbol: str) -> None:
        with self._lock:
            if symbol in self._symbols:
                self._symbols.remove(symbol)
        self._observations.pop(symbol)

    @property
    def symbols(self) -> list[str]:
        with self._lock:
            return list(self._symbols)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; the returned function unregisters it."""
        with self._lock:
            self._subscribers.append(callback)
        logger.info("monitor subscriber added ({} total)", len(self._subscribers))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # Emission

    def _publish(self, alert: Alert) -> bool:
        if not self.throttle.try_acquire(alert.throttle_key, alert.timestamp):
            logger.info(
                "{} alert for {} suppressed by rate limit: {} ({} suppressed so far)",
                alert.kind,
                alert.throttle_key,
                alert.message,
                self.metrics.suppressed_alert_count(alert.throttle_key),
            )
            return False
        with self._lock:
            subscribers = list(self._subscribers)
            self._emitted += 1
        for subscriber in subscribers:
            try:
                subscriber(alert)
            except Exception:
                logger.exception("monitor subscriber {!r} failed on {} alert", subscriber, alert.kind)
        return True

    def _fetch(self, name: str, fn: Callable[..., Any], *args: Any, symbol: str | None = None) -> Any:
        return self.caller.call(name, fn, *args, timeout=self.config.data_timeout_seconds, symbol=symbol)

    # Checks

    def check_market(self, symbol: str, now: datetime | None = None) -> Alert | None:
        """
        Compare the current quote with the previous observation of `symbol`.

        The first observation only seeds the baseline. At most one anomaly is
        reported per call, in priority price, volume, volatility.
        """
        now = now or self.clock()
        price = self._fetch("current_price", self.market.current_price, symbol, symbol=symbol)
        volume = self._fetch("current_volume", self.market.current_volume, symbol, symbol=symbol)
        volatility = self._fetch("volatility", self.market.volatility, symbol, symbol=symbol)

        with self._observations.entry(symbol) as slot:
            previous = slot.value
            slot.value = _Observation(price, volume, volatility)
        if previous is None:
            return None

        alert = None
        if previous.price > 0:
            change = abs(price - previous.price) / previous.price
            if change > self.config.price_change_threshold:
                alert = make_alert(
                    MarketAlertKind.PRICE_ANOMALY,
                    f"{symbol} price moved {change:.2%} (threshold {self.config.price_change_threshold:.2%})",
                    subject=symbol,
                    payload={"current_price": price, "last_price": previous.price, "price_change": change},
                    timestamp=now,
                )
        if alert is None and previous.volume > 0:
            ratio = volume / previous.volume
            if ratio > self.config.volume_ratio_threshold:
                alert = make_alert(
                    MarketAlertKind.VOLUME_ANOMALY,
                    f"{symbol} volume ratio {ratio:.2f}x (threshold {self.config.volume_ratio_threshold:.2f}x)",
                    subject=symbol,
                    payload={"current_volume": volume, "last_volume": previous.volume, "volume_ratio": ratio},
                    timestamp=now,
                )
        if alert is None:
            change = abs(volatility - previous.volatility)
            if change > self.config.volatility_change_threshold:
                alert = make_alert(
                    MarketAlertKind.VOLATILITY_ANOMALY,
                    f"{symbol} volatility moved {change:.2%} (threshold {self.config.volatility_change_threshold:.2%})",
                    subject=symbol,
                    payload={
                        "current_volatility": volatility,
                        "last_volatility": previous.volatility,
                        "volatility_change": change,
                    },
                    timestamp=now,
                )
        if alert is not None and self._publish(alert):
            return alert
        return None

    def capture_snapshot(self, symbols: Iterable[str], now: datetime | None = None) -> PortfolioSnapshot | None:
        """Positions and industries for risk checks; None when they cannot be read."""
        if self.positions is None:
            return None
        timeout = self.config.data_timeout_seconds
        try:
            positions, cash = capture_positions(self.caller, self.positions, timeout)
            if self.classifier is None:
                return PortfolioSnapshot.capture(positions, cash, {}, captured_at=now)
            return self._fetch(
                "build_snapshot",
                build_snapshot,
                positions,
                cash,
                self.classifier,
                list(symbols),
                now,
                self.cash_equivalents,
            )
        except DataUnavailable as exc:
            logger.warning("monitor could not capture positions this tick: {}", exc)
            return None

    def check_risk(
        self,
        symbol: str,
        snapshot: PortfolioSnapshot | None = None,
        now: datetime | None = None,
    ) -> Alert | None:
        now = now or self.clock()
        price = self._fetch("current_price", self.market.current_price, symbol, symbol=symbol)

        alert = None
        if self.risk.check_stop_loss(symbol, price):
            alert = make_alert(
                RiskAlertKind.STOP_LOSS,
                f"{symbol} hit stop-loss at {price:.4f}",
                subject=symbol,
                payload={"current_price": price, "last_trade_price": self.risk.history.last_price(symbol)},
                timestamp=now,
            )
        elif self.risk.check_take_profit(symbol, price):
            alert = make_alert(
                RiskAlertKind.TAKE_PROFIT,
                f"{symbol} hit take-profit at {price:.4f}",
                subject=symbol,
                payload={"current_price": price, "last_trade_price": self.risk.history.last_price(symbol)},
                timestamp=now,
            )
        elif snapshot is not None and snapshot.position_value(symbol) > 0:
            industry = snapshot.industries.get(symbol)
            if not self.risk.check_position_limit(snapshot, symbol, 0.0):
                alert = make_alert(
                    RiskAlertKind.POSITION_LIMIT,
                    f"{symbol} exceeds the single-symbol exposure cap",
                    subject=symbol,
                    payload={
                        "position_value": snapshot.position_value(symbol),
                        "total_value": snapshot.total_value,
                        "max_ratio": self.risk.config.max_symbol_ratio,
                    },
                    timestamp=now,
                )
            elif industry and not self.risk.check_industry_limit(snapshot, industry, 0.0):
                alert = make_alert(
                    RiskAlertKind.INDUSTRY_LIMIT,
                    f"industry {industry} of {symbol} exceeds the exposure cap",
                    subject=symbol,
                    payload={
                        "industry": industry,
                        "industry_value": snapshot.industry_value(industry),
                        "total_value": snapshot.total_value,
                        "max_ratio": self.risk.config.max_industry_ratio,
                    },
                    timestamp=now,
                )
        if alert is not None and self._publish(alert):
            return alert
        return None

    def check_system(self, now: datetime | None = None) -> Alert | None:
        now = now or self.clock()
        resources = self.metrics.resource_metrics()
        api = self.metrics.api_metrics()

        alert = None
        if resources.cpu_percent > self.config.max_cpu_percent:
            alert = make_alert(
                SystemAlertKind.PERFORMANCE,
                f"CPU usage {resources.cpu_percent:.1f}% above {self.config.max_cpu_percent:.1f}%",
                payload=resources.to_dict(),
                timestamp=now,
            )
        elif resources.memory_mb > self.config.max_memory_mb:
            alert = make_alert(
                SystemAlertKind.RESOURCE,
                f"memory usage {resources.memory_mb:.1f}MB above {self.config.max_memory_mb:.1f}MB",
                payload=resources.to_dict(),
                timestamp=now,
            )
        elif api.call_count > 0 and api.success_rate < self.config.min_api_success_rate:
            alert = make_alert(
                SystemAlertKind.NETWORK,
                f"API success rate {api.success_rate:.2%} below {self.config.min_api_success_rate:.2%}",
                payload={"success_rate": api.success_rate, "error_count": api.error_count, "calls": api.call_count},
                timestamp=now,
            )
        if alert is not None and self._publish(alert):
            return alert
        return None

    # Loop body

    def _guarded(self, name: str, check: Callable[..., Alert | None], *args: Any) -> Alert | None:
        try:
            return check(*args)
        except DataUnavailable as exc:
            logger.warning("monitor skipped {} this tick: {}", name, exc)
        except Exception:
            logger.exception("monitor {} failed", name)
        return None

    def tick(self) -> list[Alert]:
        """One monitoring pass over every watched symbol."""
        now = self.clock()
        with self._lock:
            if self._started_at is None:
                self._started_at = now
            self._ticks += 1
            tick_number = self._ticks
        symbols = self.symbols
        alerts: list[Alert | None] = []

        with self.metrics.timed("monitor_tick"):
            snapshot = self.capture_snapshot(symbols, now)
            for symbol in symbols:
                alerts.append(self._guarded(f"market check for {symbol}", self.check_market, symbol, now))
                alerts.append(self._guarded(f"risk check for {symbol}", self.check_risk, symbol, snapshot, now))
            every = max(self.config.system_check_every_ticks, 1)
            if (tick_number - 1) % every == 0:
                alerts.append(self._guarded("system check", self.check_system, now))

        with self._lock:
            self._last_tick_at = now
        return [alert for alert in alerts if alert is not None]

    def status(self) -> MonitorStatus:
        with self._lock:
            status = MonitorStatus(
                monitored_symbols=len(self._symbols),
                subscribers=len(self._subscribers),
                alerts_emitted=self._emitted,
                alerts_suppressed=self.metrics.suppressed_alert_count(),
                ticks=self._ticks,
                started_at=self._started_at,
                last_tick_at=self._last_tick_at,
            )
        logger.debug("monitor status: {}", status.to_dict())
        return status


