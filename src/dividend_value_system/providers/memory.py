"""In-memory collaborators for paper sessions and deterministic tests."""

from __future__ import annotations

from dataclasses import dataclass
import json
import math
from pathlib import Path
import threading
from typing import Any, Iterable, Mapping
from uuid import uuid4

from dividend_value_system.errors import DataUnavailable, OrderRejected
from dividend_value_system.execution.costs import TradeCostModel
from dividend_value_system.time_utils import Clock, now_utc
from dividend_value_system.types import (
    AccountCash,
    FilledOrder,
    FundamentalSnapshot,
    OrderHandle,
    OrderType,
    Position,
    Side,
    TimedOut,
)

from .base import IndustryClassifier, MarketDataProvider, OrderGateway, PositionProvider


@dataclass(slots=True)
class _MarketState:
    price: float
    volume: float
    spread: float
    volatility: float


@dataclass(slots=True)
class _Fundamentals:
    industry: str
    pb: float
    pe: float
    dividend_yield: float


class InMemoryMarketData(MarketDataProvider):
    """Dictionary-backed market data that tests mutate between ticks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._market: dict[str, _MarketState] = {}
        self._fundamentals: dict[str, _Fundamentals] = {}
        self._unavailable: set[str] = set()

    def set_market(
        self,
        symbol: str,
        price: float,
        volume: float,
        spread: float = 0.0005,
        volatility: float = 0.01,
    ) -> None:
        with self._lock:
            self._market[symbol] = _MarketState(float(price), float(volume), float(spread), float(volatility))

    def set_fundamentals(self, symbol: str, industry: str, pb: float, pe: float, dividend_yield: float) -> None:
        with self._lock:
            self._fundamentals[symbol] = _Fundamentals(industry, float(pb), float(pe), float(dividend_yield))

    def mark_unavailable(self, symbol: str, unavailable: bool = True) -> None:
        with self._lock:
            if unavailable:
                self._unavailable.add(symbol)
            else:
                self._unavailable.discard(symbol)

    def _state(self, symbol: str) -> _MarketState:
        with self._lock:
            if symbol in self._unavailable or symbol not in self._market:
                raise DataUnavailable(f"no market data for {symbol}", symbol=symbol)
            return self._market[symbol]

    def current_price(self, symbol: str) -> float:
        return self._state(symbol).price

    def current_volume(self, symbol: str) -> float:
        return self._state(symbol).volume

    def bid_ask_spread(self, symbol: str) -> float:
        return self._state(symbol).spread

    def volatility(self, symbol: str) -> float:
        return self._state(symbol).volatility

    def fundamental_snapshot(self, symbols: Iterable[str]) -> dict[str, FundamentalSnapshot]:
        out: dict[str, FundamentalSnapshot] = {}
        with self._lock:
            for symbol in symbols:
                if symbol in self._unavailable:
                    continue
                market = self._market.get(symbol)
                fundamentals = self._fundamentals.get(symbol)
                if market is None or fundamentals is None:
                    continue
                out[symbol] = FundamentalSnapshot(
                    symbol=symbol,
                    industry=fundamentals.industry,
                    pb=fundamentals.pb,
                    pe=fundamentals.pe,
                    dividend_yield=fundamentals.dividend_yield,
                    price=market.price,
                    volume=market.volume,
                )
        return out


@dataclass(slots=True)
class _Holding:
    quantity: float
    cost_basis: float
    price: float


class InMemoryPositionBook(PositionProvider):
    """Paper account: positions marked to the market data feed."""

    def __init__(self, cash: float, market: MarketDataProvider | None = None) -> None:
        self._lock = threading.Lock()
        self._cash = float(cash)
        self._frozen = 0.0
        self._holdings: dict[str, _Holding] = {}
        self.market = market
        self.unavailable = False
        # Cash-equivalent instruments held at face value per lot.
        self.par_values: dict[str, float] = {}

    def set_position(self, symbol: str, quantity: float, cost_basis: float, price: float | None = None) -> None:
        with self._lock:
            self._holdings[symbol] = _Holding(float(quantity), float(cost_basis), float(price or cost_basis))

    def set_cash(self, available: float, frozen: float = 0.0) -> None:
        with self._lock:
            self._cash = float(available)
            self._frozen = float(frozen)

    def apply_fill(self, fill: FilledOrder, fees: float = 0.0) -> None:
        with self._lock:
            holding = self._holdings.get(fill.symbol)
            if fill.side == Side.BUY:
                if holding is None:
                    holding = _Holding(0.0, 0.0, fill.price)
                    self._holdings[fill.symbol] = holding
                total_cost = holding.cost_basis * holding.quantity + fill.amount
                holding.quantity += fill.quantity
                holding.cost_basis = total_cost / holding.quantity
                holding.price = fill.price
                self._cash -= fill.amount + fees
            else:
                if holding is None or holding.quantity < fill.quantity:
                    raise OrderRejected(f"cannot sell {fill.quantity} of {fill.symbol}", symbol=fill.symbol)
                holding.quantity -= fill.quantity
                holding.price = fill.price
                self._cash += fill.amount - fees
                if holding.quantity <= 0:
                    self._holdings.pop(fill.symbol, None)

    def _mark_price(self, symbol: str, holding: _Holding) -> float:
        if symbol in self.par_values:
            return self.par_values[symbol]
        if self.market is None:
            return holding.price
        try:
            return self.market.current_price(symbol)
        except DataUnavailable:
            return holding.price

    def current_positions(self) -> dict[str, Position]:
        if self.unavailable:
            raise DataUnavailable("position service unavailable")
        with self._lock:
            holdings = {symbol: _Holding(h.quantity, h.cost_basis, h.price) for symbol, h in self._holdings.items()}
        return {
            symbol: Position(
                symbol=symbol,
                quantity=holding.quantity,
                cost_basis=holding.cost_basis,
                market_value=holding.quantity * self._mark_price(symbol, holding),
                available_quantity=holding.quantity,
            )
            for symbol, holding in holdings.items()
        }

    def account_cash(self) -> AccountCash:
        if self.unavailable:
            raise DataUnavailable("account service unavailable")
        with self._lock:
            return AccountCash(available=self._cash, frozen=self._frozen)


class StaticIndustryClassifier(IndustryClassifier):
    def __init__(
        self,
        industries: dict[str, str] | None = None,
        average_pbs: dict[str, float] | None = None,
        pe_percentiles: dict[str, float] | None = None,
    ) -> None:
        self.industries = dict(industries or {})
        self.average_pbs = dict(average_pbs or {})
        self.pe_percentiles = dict(pe_percentiles or {})
        self.lookup_count = 0

    def industry_of(self, symbol: str) -> str:
        self.lookup_count += 1
        try:
            return self.industries[symbol]
        except KeyError as exc:
            raise DataUnavailable(f"no industry for {symbol}", symbol=symbol) from exc

    def average_pb(self, industry: str) -> float:
        try:
            return self.average_pbs[industry]
        except KeyError as exc:
            raise DataUnavailable(f"no average PB for industry {industry}") from exc

    def pe_history_percentile(self, symbol: str, lookback_days: int = 250) -> float:
        try:
            return self.pe_percentiles[symbol]
        except KeyError as exc:
            raise DataUnavailable(f"no PE history for {symbol}", symbol=symbol) from exc


class PaperOrderGateway(OrderGateway):
    """
    Paper execution filling at the limit or the current market price.

    Instruments in `par_values` (repo lots) fill at face value per lot, so
    the book is debited the lot amount rather than the quoted rate.
    """

    def __init__(
        self,
        market: MarketDataProvider,
        book: InMemoryPositionBook | None = None,
        cost_model: TradeCostModel | None = None,
        audit_path: str | Path | None = None,
        clock: Clock = now_utc,
        par_values: Mapping[str, float] | None = None,
    ) -> None:
        self.market = market
        self.book = book
        self.cost_model = cost_model or TradeCostModel()
        self.audit_path = Path(audit_path) if audit_path else None
        self.clock = clock
        self.par_values = dict(par_values or {})
        if self.book is not None:
            self.book.par_values.update(self.par_values)
        self.reject_symbols: set[str] = set()
        self.timeout_symbols: set[str] = set()
        self.error_symbols: set[str] = set()
        self.partial_fill_ratio: dict[str, float] = {}
        self.submitted: list[OrderHandle] = []
        self.fills: list[FilledOrder] = []
        self._open: dict[str, OrderHandle] = {}
        self._lock = threading.Lock()
        if self.audit_path:
            self.audit_path.parent.mkdir(parents=True, exist_ok=True)

    def _audit(self, payload: dict[str, Any]) -> None:
        if not self.audit_path:
            return
        with self.audit_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, default=str) + "\n")

    def submit_order(
        self,
        symbol: str,
        quantity: float,
        side: Side,
        order_type: OrderType = OrderType.MARKET,
        limit_price: float | None = None,
    ) -> OrderHandle:
        if symbol in self.error_symbols:
            raise RuntimeError(f"gateway connection dropped while routing {symbol}")
        if quantity <= 0:
            self._audit({"type": "reject", "symbol": symbol, "reason": "quantity_must_be_positive"})
            raise OrderRejected("quantity_must_be_positive", symbol=symbol)
        if symbol in self.reject_symbols:
            self._audit({"type": "reject", "symbol": symbol, "reason": "rejected_by_venue"})
            raise OrderRejected("rejected_by_venue", symbol=symbol)
        handle = OrderHandle(
            order_id=f"paper-{uuid4().hex}",
            symbol=symbol,
            side=Side(side),
            quantity=float(quantity),
            order_type=OrderType(order_type),
            limit_price=limit_price,
            submitted_at=self.clock(),
        )
        with self._lock:
            self._open[handle.order_id] = handle
            self.submitted.append(handle)
        self._audit({"type": "accept", "order_id": handle.order_id, "symbol": symbol, "side": str(side), "quantity": quantity})
        return handle

    def await_fill(self, handle: OrderHandle, timeout: float) -> FilledOrder | TimedOut:
        if handle.symbol in self.timeout_symbols:
            return TimedOut(order_id=handle.order_id, symbol=handle.symbol, timeout_seconds=timeout)
        with self._lock:
            self._open.pop(handle.order_id, None)
        if handle.symbol in self.par_values:
            price = self.par_values[handle.symbol]
        elif handle.limit_price is not None:
            price = float(handle.limit_price)
        else:
            price = self.market.current_price(handle.symbol)
        ratio = self.partial_fill_ratio.get(handle.symbol, 1.0)
        quantity = float(math.floor(handle.quantity * ratio))
        fill = FilledOrder(
            order_id=handle.order_id,
            symbol=handle.symbol,
            side=handle.side,
            price=price,
            quantity=quantity,
            requested_quantity=handle.quantity,
            filled_at=self.clock(),
        )
        if quantity > 0 and self.book is not None:
            fees = self.cost_model.cost(fill.side, fill.price, fill.quantity).fees
            self.book.apply_fill(fill, fees=fees)
        with self._lock:
            self.fills.append(fill)
        self._audit({"type": "fill", "order_id": fill.order_id, "price": price, "quantity": quantity})
        return fill
