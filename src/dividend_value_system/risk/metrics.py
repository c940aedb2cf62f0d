"""Portfolio risk analytics over a net-asset-value series."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import pandas as pd

PERIODS_PER_YEAR = 252
RISK_FREE_RATE = 0.03


@dataclass(frozen=True, slots=True)
class RiskMetrics:
    max_drawdown: float = np.nan
    annual_return: float = np.nan
    volatility: float = np.nan
    sharpe_ratio: float = np.nan
    sortino_ratio: float = np.nan
    calmar_ratio: float = np.nan
    beta: float = np.nan
    alpha: float = np.nan
    information_ratio: float = np.nan

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_series(values: Any) -> pd.Series:
    series = values if isinstance(values, pd.Series) else pd.Series(values, dtype=float)
    return series.astype(float).dropna()


def max_drawdown(nav: pd.Series) -> float:
    """Largest peak-to-trough decline as a positive fraction."""
    if nav.empty:
        return np.nan
    drawdown = 1.0 - nav / nav.cummax()
    return float(drawdown.max())


def annualized_volatility(returns: pd.Series) -> float:
    if returns.empty:
        return np.nan
    return float(returns.std(ddof=0) * np.sqrt(PERIODS_PER_YEAR))


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0 or np.isnan(denominator):
        return np.nan
    return float(numerator / denominator)


def sortino_ratio(returns: pd.Series, annual_return: float) -> float:
    downside = returns[returns < 0]
    if downside.empty:
        return np.nan
    downside_deviation = np.sqrt((downside**2).sum() / len(returns) * PERIODS_PER_YEAR)
    return _ratio(annual_return - RISK_FREE_RATE, downside_deviation)


def beta(returns: pd.Series, benchmark_returns: pd.Series) -> float:
    if len(returns) != len(benchmark_returns) or len(returns) < 2:
        return np.nan
    r = returns.to_numpy()
    b = benchmark_returns.to_numpy()
    benchmark_variance = float(((b - b.mean()) ** 2).sum())
    covariance = float(((r - r.mean()) * (b - b.mean())).sum())
    return _ratio(covariance, benchmark_variance)


def compute_risk_metrics(nav: Any, benchmark_returns: Any | None = None) -> RiskMetrics:
    """
    Compute risk metrics from periodic NAV observations.

    Benchmark returns must be aligned with the NAV's period returns
    (one fewer element than the NAV); otherwise benchmark-relative metrics are nan.
    """
    nav_series = _as_series(nav)
    if len(nav_series) < 2:
        return RiskMetrics(max_drawdown=max_drawdown(nav_series))

    returns = nav_series.pct_change().dropna().reset_index(drop=True)
    annual_return = float(returns.mean() * PERIODS_PER_YEAR)
    volatility = annualized_volatility(returns)
    drawdown = max_drawdown(nav_series)

    beta_value = alpha_value = information = np.nan
    if benchmark_returns is not None:
        bench = _as_series(benchmark_returns).reset_index(drop=True)
        beta_value = beta(returns, bench)
        if not np.isnan(beta_value):
            benchmark_annual = float(bench.mean() * PERIODS_PER_YEAR)
            alpha_value = annual_return - (RISK_FREE_RATE + beta_value * (benchmark_annual - RISK_FREE_RATE))
            excess = returns - bench
            information = _ratio(float(excess.mean() * PERIODS_PER_YEAR), annualized_volatility(excess))

    return RiskMetrics(
        max_drawdown=drawdown,
        annual_return=annual_return,
        volatility=volatility,
        sharpe_ratio=_ratio(annual_return - RISK_FREE_RATE, volatility),
        sortino_ratio=sortino_ratio(returns, annual_return),
        calmar_ratio=_ratio(annual_return, drawdown),
        beta=beta_value,
        alpha=alpha_value,
        information_ratio=information,
    )
