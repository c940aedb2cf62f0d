"""Entry screen for undervalued dividend payers."""

from __future__ import annotations

from dataclasses import dataclass

from dividend_value_system.config import StrategyConfig
from dividend_value_system.types import FundamentalSnapshot


@dataclass(frozen=True, slots=True)
class ScreenResult:
    passed: bool
    reason: str


def passes_fundamental_filter(snapshot: FundamentalSnapshot, config: StrategyConfig) -> ScreenResult:
    """Below book, liquid, and paying a dividend."""
    if snapshot.pb >= config.max_pb:
        return ScreenResult(False, f"pb {snapshot.pb:.3f} >= {config.max_pb:.3f}")
    if snapshot.volume <= config.min_volume:
        return ScreenResult(False, f"volume {snapshot.volume:.0f} <= {config.min_volume:.0f}")
    if snapshot.dividend_yield <= config.min_dividend_yield:
        return ScreenResult(
            False,
            f"dividend yield {snapshot.dividend_yield:.2%} <= {config.min_dividend_yield:.2%}",
        )
    return ScreenResult(True, "fundamentals")


def screen(
    snapshot: FundamentalSnapshot,
    config: StrategyConfig,
    last_trade_price: float | None,
) -> ScreenResult:
    """
    Decide whether a symbol that is not held may be bought.

    A symbol traded before is judged only on its price against the last
    trade: re-entry needs price <= last_trade_price * drop_threshold and
    ignores the fundamental filter entirely.
    """
    if last_trade_price is not None:
        ceiling = last_trade_price * config.drop_threshold
        if snapshot.price <= ceiling:
            return ScreenResult(True, f"re-entry: price {snapshot.price:.4f} <= {ceiling:.4f}")
        return ScreenResult(False, f"re-entry: price {snapshot.price:.4f} > {ceiling:.4f}")
    return passes_fundamental_filter(snapshot, config)


def select_candidates(
    snapshots: dict[str, FundamentalSnapshot],
    config: StrategyConfig,
) -> list[str]:
    """Symbols passing the fundamental filter, ordered by dividend yield."""
    passed = [s for s in snapshots.values() if passes_fundamental_filter(s, config).passed]
    passed.sort(key=lambda s: (-s.dividend_yield, s.symbol))
    return [s.symbol for s in passed]
