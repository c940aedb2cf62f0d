"""Exchange fee schedule: commission, stamp duty and transfer fee."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dividend_value_system.config import CostModelConfig
from dividend_value_system.types import Side


@dataclass(frozen=True, slots=True)
class TradeCost:
    amount: float
    commission: float
    stamp_duty: float
    transfer_fee: float

    @property
    def fees(self) -> float:
        return self.commission + self.stamp_duty + self.transfer_fee

    @property
    def total_cost(self) -> float:
        return self.amount + self.fees

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "commission": self.commission,
            "stamp_duty": self.stamp_duty,
            "transfer_fee": self.transfer_fee,
            "total_cost": self.total_cost,
        }


class TradeCostModel:
    """Pure fee calculator; the same inputs always give the same TradeCost."""

    def __init__(self, config: CostModelConfig | None = None) -> None:
        self.config = config or CostModelConfig()

    def cost(self, side: Side | str, price: float, quantity: float) -> TradeCost:
        if price < 0:
            raise ValueError(f"price must be >= 0, got {price}")
        if quantity < 0:
            raise ValueError(f"quantity must be >= 0, got {quantity}")
        side = Side(side)
        amount = float(price) * float(quantity)
        commission = max(amount * self.config.commission_rate, self.config.min_commission)
        stamp_duty = amount * self.config.stamp_duty_rate if side == Side.SELL else 0.0
        transfer_fee = amount * self.config.transfer_fee_rate
        return TradeCost(
            amount=amount,
            commission=commission,
            stamp_duty=stamp_duty,
            transfer_fee=transfer_fee,
        )

    def buy_cost(self, price: float, quantity: float) -> TradeCost:
        return self.cost(Side.BUY, price, quantity)

    def sell_cost(self, price: float, quantity: float) -> TradeCost:
        return self.cost(Side.SELL, price, quantity)

    def fee_rate(self, side: Side | str) -> float:
        """Proportional fee rate ignoring the commission floor."""
        rate = self.config.commission_rate + self.config.transfer_fee_rate
        if Side(side) == Side.SELL:
            rate += self.config.stamp_duty_rate
        return rate
