"""Trade ledger and keyed per-symbol state."""

from .history import TradeHistoryStore
from .keyed_state import KeyedStateStore

__all__ = ["KeyedStateStore", "TradeHistoryStore"]
