"""Trading costs, execution advice and the cash sweep."""

from .costs import TradeCost, TradeCostModel
from .optimizer import CostTimingOptimizer, TradeCostAnalysis, TradeTiming
from .sweep import CashSweeper, SweepResult

__all__ = [
    "CashSweeper",
    "CostTimingOptimizer",
    "SweepResult",
    "TradeCost",
    "TradeCostAnalysis",
    "TradeCostModel",
    "TradeTiming",
]
