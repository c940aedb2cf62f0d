"""Error taxonomy shared by the strategy, risk and monitoring layers."""

from __future__ import annotations


class StrategyError(Exception):
    """Base class for all strategy-level failures."""


class DataUnavailable(StrategyError):
    """A collaborator could not supply a value this cycle; skip the symbol."""

    def __init__(self, message: str, symbol: str | None = None) -> None:
        super().__init__(message)
        self.symbol = symbol


class OrderRejected(StrategyError):
    """The gateway declined an order or did not confirm it within the timeout."""

    def __init__(self, message: str, symbol: str | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.timed_out = timed_out


class InvalidConfiguration(StrategyError):
    """Configuration cannot be used; raised at startup only."""


class CycleAborted(StrategyError):
    """Account-level state could not be captured; the whole cycle is skipped."""
