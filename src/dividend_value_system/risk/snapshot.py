"""Point-in-time portfolio view shared by every limit check in a cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping

from dividend_value_system.providers.base import IndustryClassifier
from dividend_value_system.time_utils import now_utc
from dividend_value_system.types import AccountCash, Position


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    """
    Immutable positions, cash and industry partition captured once per cycle.

    Total value is fixed at capture time so sequential buy decisions never
    see a recomputed denominator.
    """

    positions: Mapping[str, Position]
    cash: AccountCash
    industries: Mapping[str, str]
    total_value: float
    captured_at: datetime = field(default_factory=now_utc)

    @classmethod
    def capture(
        cls,
        positions: Mapping[str, Position],
        cash: AccountCash,
        industries: Mapping[str, str],
        captured_at: datetime | None = None,
    ) -> "PortfolioSnapshot":
        frozen_positions = MappingProxyType(dict(positions))
        total_value = sum(p.market_value for p in frozen_positions.values()) + cash.total
        return cls(
            positions=frozen_positions,
            cash=cash,
            industries=MappingProxyType(dict(industries)),
            total_value=float(total_value),
            captured_at=captured_at or now_utc(),
        )

    def position(self, symbol: str) -> Position | None:
        return self.positions.get(symbol)

    def position_value(self, symbol: str) -> float:
        position = self.positions.get(symbol)
        return position.market_value if position else 0.0

    def industry_value(self, industry: str) -> float:
        return sum(
            position.market_value
            for symbol, position in self.positions.items()
            if self.industries.get(symbol) == industry
        )

    def held_symbols(self) -> list[str]:
        return sorted(symbol for symbol, position in self.positions.items() if position.quantity > 0)


def build_snapshot(
    positions: Mapping[str, Position],
    cash: AccountCash,
    classifier: IndustryClassifier,
    extra_symbols: list[str] | None = None,
    captured_at: datetime | None = None,
    unclassified: Iterable[str] = (),
) -> PortfolioSnapshot:
    """
    Resolve industries for held and candidate symbols in one batch, then freeze.

    `unclassified` holdings (swept cash equivalents) count toward total value
    but belong to no industry.
    """
    symbols = sorted((set(positions) | set(extra_symbols or [])) - set(unclassified))
    industries = classifier.industries_of(symbols)
    return PortfolioSnapshot.capture(positions, cash, industries, captured_at=captured_at)
