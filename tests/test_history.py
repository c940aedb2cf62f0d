from __future__ import annotations

from datetime import timedelta
import threading

import pytest

from dividend_value_system.ledger import TradeHistoryStore
from dividend_value_system.types import Side


def test_history_is_most_recent_first(clock) -> None:
    store = TradeHistoryStore(clock=clock)
    store.record("X", 10.0, 100, Side.BUY)
    clock.advance(days=1)
    store.record("X", 11.0, 100, Side.BUY)

    history = store.history("X")
    assert [r.price for r in history] == [11.0, 10.0]
    assert store.last_price("X") == 11.0
    assert store.last_trade_time("X") == clock()


def test_late_record_is_ordered_by_timestamp(clock) -> None:
    store = TradeHistoryStore(clock=clock)
    store.record("X", 10.0, 100, Side.BUY)
    store.record("X", 9.0, 100, Side.BUY, timestamp=clock() - timedelta(hours=2))

    assert store.last_price("X") == 10.0
    assert [r.price for r in store.history("X")] == [10.0, 9.0]


def test_unknown_symbol_has_no_history(clock) -> None:
    store = TradeHistoryStore(clock=clock)
    assert store.history("NONE") == ()
    assert store.last_record("NONE") is None
    assert store.last_price("NONE") is None
    assert store.last_trade_time("NONE") is None


@pytest.mark.parametrize("price,quantity", [(-1.0, 100), (10.0, 0), (10.0, -5)])
def test_invalid_trades_are_rejected(clock, price: float, quantity: float) -> None:
    store = TradeHistoryStore(clock=clock)
    with pytest.raises(ValueError):
        store.record("X", price, quantity, Side.BUY)
    assert store.history("X") == ()


def test_concurrent_writers_lose_no_records(clock) -> None:
    store = TradeHistoryStore(clock=clock)
    barrier = threading.Barrier(8)

    def writer(index: int) -> None:
        barrier.wait()
        for n in range(50):
            store.record(f"S{index % 2}", 10.0 + n, 100, Side.BUY, timestamp=clock() + timedelta(seconds=index * 100 + n))

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store.history("S0")) == 200
    assert len(store.history("S1")) == 200
    times = [r.timestamp for r in store.history("S0")]
    assert times == sorted(times, reverse=True)
    assert store.symbols() == ["S0", "S1"]


def test_frame_lists_trades_in_time_order(clock) -> None:
    store = TradeHistoryStore(clock=clock)
    store.record("B", 5.0, 200, "buy")
    clock.advance(minutes=5)
    store.record("A", 7.0, 100, "buy")
    clock.advance(minutes=5)
    store.record("B", 6.0, 200, "sell")

    frame = store.to_frame()
    assert list(frame["symbol"]) == ["B", "A", "B"]
    assert list(frame["side"]) == ["buy", "buy", "sell"]
    assert store.to_frame("A").shape[0] == 1
    assert TradeHistoryStore(clock=clock).to_frame().empty
