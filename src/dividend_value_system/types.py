"""Core domain datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from .time_utils import now_utc


class Side(StrEnum):
    BUY = "buy"
    SELL = "sell"


class OrderType(StrEnum):
    MARKET = "market"
    LIMIT = "limit"


@dataclass(frozen=True, slots=True)
class Position:
    """Read-only holding snapshot supplied by the account boundary."""

    symbol: str
    quantity: float
    cost_basis: float
    market_value: float
    available_quantity: float

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"position quantity must be >= 0 for {self.symbol}")
        if self.available_quantity > self.quantity:
            raise ValueError(f"available quantity exceeds holding for {self.symbol}")


@dataclass(frozen=True, slots=True)
class AccountCash:
    available: float
    frozen: float = 0.0

    @property
    def total(self) -> float:
        return self.available + self.frozen


@dataclass(frozen=True, slots=True)
class TradeRecord:
    symbol: str
    timestamp: datetime
    price: float
    quantity: float
    side: Side

    @property
    def amount(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "quantity": self.quantity,
            "side": str(self.side),
        }


@dataclass(frozen=True, slots=True)
class FundamentalSnapshot:
    """Point-in-time fundamentals and trading data for one symbol."""

    symbol: str
    industry: str
    pb: float
    pe: float
    dividend_yield: float
    price: float
    volume: float


@dataclass(frozen=True, slots=True)
class Quote:
    last: float
    bid: float
    ask: float

    @property
    def relative_spread(self) -> float:
        if self.last <= 0:
            return 0.0
        return (self.ask - self.bid) / self.last


@dataclass(frozen=True, slots=True)
class OrderHandle:
    order_id: str
    symbol: str
    side: Side
    quantity: float
    order_type: OrderType = OrderType.MARKET
    limit_price: float | None = None
    submitted_at: datetime = field(default_factory=now_utc)


@dataclass(frozen=True, slots=True)
class FilledOrder:
    """Confirmed execution; quantity may be below the requested amount."""

    order_id: str
    symbol: str
    side: Side
    price: float
    quantity: float
    requested_quantity: float
    filled_at: datetime = field(default_factory=now_utc)

    @property
    def partial(self) -> bool:
        return self.quantity < self.requested_quantity

    @property
    def amount(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True, slots=True)
class TimedOut:
    order_id: str
    symbol: str
    timeout_seconds: float
