"""Trade analytics package."""

from .trades import IndustryTradeStats, RoundTrip, SymbolTradeStats, TradeAnalyzer, pair_round_trips

__all__ = ["IndustryTradeStats", "RoundTrip", "SymbolTradeStats", "TradeAnalyzer", "pair_round_trips"]
