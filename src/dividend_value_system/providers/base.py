"""Collaborator contracts for market data, execution, positions and industries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
import threading
import time
from typing import Any, Callable, Iterable, Mapping, TypeVar

from loguru import logger

from dividend_value_system.errors import DataUnavailable, OrderRejected
from dividend_value_system.performance import PerformanceMetricsAggregator
from dividend_value_system.types import (
    AccountCash,
    FilledOrder,
    FundamentalSnapshot,
    OrderHandle,
    OrderType,
    Position,
    Quote,
    Side,
    TimedOut,
)

T = TypeVar("T")


class MarketDataProvider(ABC):
    """Live quotes and fundamentals; every method raises DataUnavailable on failure."""

    @abstractmethod
    def current_price(self, symbol: str) -> float:
        """Return the latest traded price."""

    @abstractmethod
    def current_volume(self, symbol: str) -> float:
        """Return the session volume so far."""

    @abstractmethod
    def bid_ask_spread(self, symbol: str) -> float:
        """Return the relative spread (ask - bid) / last."""

    @abstractmethod
    def volatility(self, symbol: str) -> float:
        """Return the current volatility estimate."""

    @abstractmethod
    def fundamental_snapshot(self, symbols: Iterable[str]) -> dict[str, FundamentalSnapshot]:
        """Return one consistent snapshot per symbol that could be answered."""

    def quote(self, symbol: str) -> Quote:
        last = self.current_price(symbol)
        half_spread = self.bid_ask_spread(symbol) / 2.0
        return Quote(last=last, bid=last * (1.0 - half_spread), ask=last * (1.0 + half_spread))


class OrderGateway(ABC):
    """Order execution boundary."""

    @abstractmethod
    def submit_order(
        self,
        symbol: str,
        quantity: float,
        side: Side,
        order_type: OrderType = OrderType.MARKET,
        limit_price: float | None = None,
    ) -> OrderHandle:
        """Submit an order; raise OrderRejected if the gateway declines it."""

    @abstractmethod
    def await_fill(self, handle: OrderHandle, timeout: float) -> FilledOrder | TimedOut:
        """Wait at most `timeout` seconds for a fill confirmation."""


class PositionProvider(ABC):
    """Account boundary owning positions and cash."""

    @abstractmethod
    def current_positions(self) -> dict[str, Position]:
        """Return holdings keyed by symbol."""

    @abstractmethod
    def account_cash(self) -> AccountCash:
        """Return available and frozen cash."""


class IndustryClassifier(ABC):
    """Industry membership and valuation context."""

    @abstractmethod
    def industry_of(self, symbol: str) -> str:
        """Return the industry code of a symbol."""

    @abstractmethod
    def average_pb(self, industry: str) -> float:
        """Return the average price-to-book ratio of an industry."""

    @abstractmethod
    def pe_history_percentile(self, symbol: str, lookback_days: int = 250) -> float:
        """Return the percentile rank in [0, 1] of the current PE over the lookback."""

    def industries_of(self, symbols: Iterable[str]) -> dict[str, str]:
        """Batched membership lookup; symbols that cannot be classified are omitted."""
        out: dict[str, str] = {}
        for symbol in symbols:
            try:
                out[symbol] = self.industry_of(symbol)
            except DataUnavailable as exc:
                logger.warning("industry lookup failed for {}: {}", symbol, exc)
        return out


class BoundedCaller:
    """
    Run collaborator calls under a caller-supplied timeout.

    Timeouts become DataUnavailable; every call is recorded in the metrics aggregator.
    A timed-out call that keeps running still holds its worker; once every
    worker is held that way the pool is replaced and the stuck calls are abandoned.
    """

    def __init__(
        self,
        metrics: PerformanceMetricsAggregator | None = None,
        max_workers: int = 4,
    ) -> None:
        self.metrics = metrics or PerformanceMetricsAggregator()
        self.max_workers = max_workers
        self.pool_resets = 0
        self._lock = threading.Lock()
        self._stuck: set[Future] = set()
        self._executor = self._new_executor()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="provider-call")

    @property
    def stuck_calls(self) -> int:
        with self._lock:
            self._stuck = {future for future in self._stuck if not future.done()}
            return len(self._stuck)

    def _note_stuck(self, name: str, future: Future) -> None:
        with self._lock:
            self._stuck = {f for f in self._stuck if not f.done()}
            self._stuck.add(future)
            stuck = len(self._stuck)
            if stuck < self.max_workers:
                logger.warning("{} still running after its timeout; {}/{} provider workers stuck", name, stuck, self.max_workers)
                return
            abandoned, self._executor = self._executor, self._new_executor()
            self._stuck = set()
            self.pool_resets += 1
        logger.error("all {} provider workers stuck (last: {}); replacing the pool", stuck, name)
        abandoned.shutdown(wait=False, cancel_futures=True)

    def call(
        self,
        name: str,
        fn: Callable[..., T],
        *args: Any,
        timeout: float,
        symbol: str | None = None,
    ) -> T:
        started = time.perf_counter()
        with self._lock:
            executor = self._executor
        future = executor.submit(fn, *args)
        try:
            result = future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            if not future.cancel():
                self._note_stuck(name, future)
            self.metrics.record_api_call(name, time.perf_counter() - started, success=False)
            raise DataUnavailable(f"{name} timed out after {timeout:.1f}s", symbol=symbol) from exc
        except Exception:
            self.metrics.record_api_call(name, time.perf_counter() - started, success=False)
            raise
        self.metrics.record_api_call(name, time.perf_counter() - started, success=True)
        return result

    def shutdown(self) -> None:
        with self._lock:
            executor = self._executor
        executor.shutdown(wait=False, cancel_futures=True)


def execute_order(
    caller: BoundedCaller,
    gateway: OrderGateway,
    symbol: str,
    quantity: float,
    side: Side,
    timeout: float,
    order_type: OrderType = OrderType.MARKET,
    limit_price: float | None = None,
) -> FilledOrder:
    """Submit and wait for a fill; any failure surfaces as OrderRejected."""
    try:
        handle = caller.call(
            "submit_order",
            gateway.submit_order,
            symbol,
            quantity,
            side,
            order_type,
            limit_price,
            timeout=timeout,
            symbol=symbol,
        )
        # await_fill enforces its own timeout; the outer bound leaves headroom for the round trip.
        outcome = caller.call(
            "await_fill",
            gateway.await_fill,
            handle,
            timeout,
            timeout=timeout * 2,
            symbol=symbol,
        )
    except OrderRejected:
        raise
    except DataUnavailable as exc:
        raise OrderRejected(str(exc), symbol=symbol, timed_out=True) from exc
    if isinstance(outcome, TimedOut):
        raise OrderRejected(
            f"order {outcome.order_id} not filled within {outcome.timeout_seconds:.1f}s",
            symbol=symbol,
            timed_out=True,
        )
    if outcome.quantity <= 0:
        raise OrderRejected(f"order {outcome.order_id} filled zero quantity", symbol=symbol)
    return outcome


def capture_positions(
    caller: BoundedCaller,
    provider: PositionProvider,
    timeout: float,
) -> tuple[Mapping[str, Position], AccountCash]:
    positions = caller.call("current_positions", provider.current_positions, timeout=timeout)
    cash = caller.call("account_cash", provider.account_cash, timeout=timeout)
    return positions, cash
