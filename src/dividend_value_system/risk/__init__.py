"""Risk checks, portfolio snapshots and risk analytics."""

from .evaluator import GateResult, RiskEvaluator
from .metrics import RiskMetrics, compute_risk_metrics
from .snapshot import PortfolioSnapshot, build_snapshot

__all__ = [
    "GateResult",
    "PortfolioSnapshot",
    "RiskEvaluator",
    "RiskMetrics",
    "build_snapshot",
    "compute_risk_metrics",
]
