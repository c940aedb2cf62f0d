"""Orchestration helpers for paper and live sessions."""

from .loops import LoopConfig, MonitorLoop, StrategyLoop
from .system import TradingSystem, build_system

__all__ = ["LoopConfig", "MonitorLoop", "StrategyLoop", "TradingSystem", "build_system"]
