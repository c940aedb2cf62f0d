"""System configuration objects and helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import InvalidConfiguration

# Tenor (days) -> exchange instrument for the overnight treasury repo sweep.
REPO_INSTRUMENTS: dict[int, str] = {
    1: "SHSE.204001",
    2: "SHSE.204002",
    3: "SHSE.204003",
    4: "SHSE.204004",
    7: "SHSE.204007",
    14: "SHSE.204014",
    28: "SHSE.204028",
    91: "SHSE.204091",
    182: "SHSE.204182",
}


@dataclass(slots=True)
class CostModelConfig:
    commission_rate: float = 0.0003
    min_commission: float = 5.0
    stamp_duty_rate: float = 0.001
    transfer_fee_rate: float = 0.00002


@dataclass(slots=True)
class RiskConfig:
    cooldown_days: float = 5.0
    stop_loss_threshold: float = 0.10
    take_profit_threshold: float = 0.20
    max_symbol_ratio: float = 0.10
    max_industry_ratio: float = 0.30


@dataclass(slots=True)
class StrategyConfig:
    max_pb: float = 1.0
    min_volume: float = 100_000_000.0
    min_dividend_yield: float = 0.01
    drop_threshold: float = 0.5
    pe_high_percentile: float = 0.7
    pe_lookback_days: int = 250
    batch_count: int = 3
    target_position_value: float = 10_000.0
    lot_size: int = 100
    order_timeout_seconds: float = 10.0
    data_timeout_seconds: float = 5.0


@dataclass(slots=True)
class SweepConfig:
    enabled: bool = True
    tenor_days: int = 1
    lot_amount: float = 1_000.0
    session_close: str = "15:00"
    window_minutes: int = 5
    exchange_timezone: str = "Asia/Shanghai"

    @property
    def instrument(self) -> str:
        try:
            return REPO_INSTRUMENTS[self.tenor_days]
        except KeyError as exc:
            raise InvalidConfiguration(f"unsupported cash-equivalent tenor: {self.tenor_days} days") from exc


@dataclass(slots=True)
class MonitorConfig:
    price_change_threshold: float = 0.05
    volume_ratio_threshold: float = 2.0
    volatility_change_threshold: float = 0.02
    alert_interval_seconds: float = 60.0
    max_alerts_per_hour: int = 10
    max_cpu_percent: float = 80.0
    max_memory_mb: float = 1024.0
    min_api_success_rate: float = 0.95
    tick_interval_seconds: float = 5.0
    system_check_every_ticks: int = 12
    data_timeout_seconds: float = 5.0


@dataclass(slots=True)
class OptimizerConfig:
    max_volume_participation: float = 0.10
    slippage_threshold: float = 0.001
    spread_quantity_shade: float = 0.20
    impact_threshold: float = 0.10
    price_band: float = 0.001
    impact_markup: float = 0.002
    recent_trade_days: int = 30
    expected_saving_ratio: float = 0.20
    high_cost_ratio: float = 0.003


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    file_path: str | None = None
    serialize: bool = True
    rotation: str = "100 MB"
    retention: str = "10 days"


@dataclass(slots=True)
class SystemConfig:
    universe: list[str] = field(default_factory=list)
    cycle_interval_seconds: float = 60.0
    costs: CostModelConfig = field(default_factory=CostModelConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> "SystemConfig":
        return SystemConfig(
            universe=list(payload.get("universe", [])),
            cycle_interval_seconds=float(payload.get("cycle_interval_seconds", 60.0)),
            costs=CostModelConfig(**payload.get("costs", {})),
            risk=RiskConfig(**payload.get("risk", {})),
            strategy=StrategyConfig(**payload.get("strategy", {})),
            sweep=SweepConfig(**payload.get("sweep", {})),
            monitor=MonitorConfig(**payload.get("monitor", {})),
            optimizer=OptimizerConfig(**payload.get("optimizer", {})),
            logging=LoggingConfig(**payload.get("logging", {})),
        )

    def validate(self) -> "SystemConfig":
        """Reject unusable settings before any cycle runs."""
        problems: list[str] = []
        for name in ("commission_rate", "min_commission", "stamp_duty_rate", "transfer_fee_rate"):
            if getattr(self.costs, name) < 0:
                problems.append(f"costs.{name} must be >= 0")
        for name in ("max_symbol_ratio", "max_industry_ratio"):
            value = getattr(self.risk, name)
            if not 0 < value <= 1:
                problems.append(f"risk.{name} must be in (0, 1]")
        if self.risk.cooldown_days < 0:
            problems.append("risk.cooldown_days must be >= 0")
        if self.strategy.batch_count < 1:
            problems.append("strategy.batch_count must be >= 1")
        if self.strategy.lot_size < 1:
            problems.append("strategy.lot_size must be >= 1")
        if self.strategy.target_position_value <= 0:
            problems.append("strategy.target_position_value must be > 0")
        if not 0 < self.strategy.drop_threshold <= 1:
            problems.append("strategy.drop_threshold must be in (0, 1]")
        if self.monitor.max_alerts_per_hour < 1:
            problems.append("monitor.max_alerts_per_hour must be >= 1")
        if self.sweep.enabled:
            if self.sweep.tenor_days not in REPO_INSTRUMENTS:
                problems.append(f"sweep.tenor_days {self.sweep.tenor_days} is not a supported tenor")
            if self.sweep.lot_amount <= 0:
                problems.append("sweep.lot_amount must be > 0")
        if problems:
            raise InvalidConfiguration("; ".join(problems))
        return self


def load_config(path: str | Path) -> SystemConfig:
    """Load system configuration from YAML."""
    file_path = Path(path)
    with file_path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    return SystemConfig.from_dict(payload)


def save_config(config: SystemConfig, path: str | Path) -> None:
    """Persist system configuration to YAML."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.to_dict(), handle, sort_keys=False)
