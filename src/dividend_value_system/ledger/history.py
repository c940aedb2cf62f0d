"""Append-only per-symbol trade ledger."""

from __future__ import annotations

from bisect import insort
from datetime import datetime

import pandas as pd

from dividend_value_system.time_utils import Clock, now_utc
from dividend_value_system.types import Side, TradeRecord

from .keyed_state import KeyedStateStore


class TradeHistoryStore:
    """
    Executed trades per symbol.

    Writes for one symbol are serialized under that symbol's lock; different
    symbols never contend. Records are never edited or removed.
    """

    def __init__(self, clock: Clock = now_utc) -> None:
        self.clock = clock
        self._ledgers: KeyedStateStore[list[TradeRecord]] = KeyedStateStore()

    def record(
        self,
        symbol: str,
        price: float,
        quantity: float,
        side: Side | str,
        timestamp: datetime | None = None,
    ) -> TradeRecord:
        if price < 0 or quantity <= 0:
            raise ValueError(f"invalid trade for {symbol}: price={price} quantity={quantity}")
        record = TradeRecord(
            symbol=symbol,
            timestamp=timestamp or self.clock(),
            price=float(price),
            quantity=float(quantity),
            side=Side(side),
        )
        with self._ledgers.entry(symbol, list) as slot:
            insort(slot.value, record, key=lambda item: item.timestamp)
        return record

    def history(self, symbol: str) -> tuple[TradeRecord, ...]:
        """Most recent first."""
        with self._ledgers.entry(symbol) as slot:
            if not slot.value:
                return ()
            return tuple(reversed(slot.value))

    def last_record(self, symbol: str) -> TradeRecord | None:
        with self._ledgers.entry(symbol) as slot:
            if not slot.value:
                return None
            return slot.value[-1]

    def last_price(self, symbol: str) -> float | None:
        record = self.last_record(symbol)
        return record.price if record else None

    def last_trade_time(self, symbol: str) -> datetime | None:
        record = self.last_record(symbol)
        return record.timestamp if record else None

    def symbols(self) -> list[str]:
        return sorted(self._ledgers.keys())

    def to_frame(self, symbol: str | None = None) -> pd.DataFrame:
        symbols = [symbol] if symbol else self.symbols()
        rows = [record.to_dict() for name in symbols for record in reversed(self.history(name))]
        if not rows:
            return pd.DataFrame(columns=["symbol", "timestamp", "price", "quantity", "side"])
        frame = pd.DataFrame(rows)
        frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
        return frame.sort_values(["timestamp", "symbol"]).reset_index(drop=True)
