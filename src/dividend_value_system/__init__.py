"""Dividend value strategy: decision engine, risk limits and real-time monitoring."""

from .config import (
    CostModelConfig,
    LoggingConfig,
    MonitorConfig,
    OptimizerConfig,
    RiskConfig,
    StrategyConfig,
    SweepConfig,
    SystemConfig,
    load_config,
    save_config,
)
from .errors import CycleAborted, DataUnavailable, InvalidConfiguration, OrderRejected, StrategyError

__all__ = [
    "CostModelConfig",
    "CycleAborted",
    "DataUnavailable",
    "InvalidConfiguration",
    "LoggingConfig",
    "MonitorConfig",
    "OptimizerConfig",
    "OrderRejected",
    "RiskConfig",
    "StrategyConfig",
    "StrategyError",
    "SweepConfig",
    "SystemConfig",
    "load_config",
    "save_config",
]
