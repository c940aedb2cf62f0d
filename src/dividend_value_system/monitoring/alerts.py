"""Alert contracts emitted by the real-time monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from dividend_value_system.time_utils import now_utc


class AlertSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertCategory(StrEnum):
    MARKET = "market"
    RISK = "risk"
    SYSTEM = "system"


class MarketAlertKind(StrEnum):
    PRICE_ANOMALY = "price_anomaly"
    VOLUME_ANOMALY = "volume_anomaly"
    VOLATILITY_ANOMALY = "volatility_anomaly"


class RiskAlertKind(StrEnum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    POSITION_LIMIT = "position_limit"
    INDUSTRY_LIMIT = "industry_limit"


class SystemAlertKind(StrEnum):
    PERFORMANCE = "performance"
    RESOURCE = "resource"
    NETWORK = "network"


SEVERITY_BY_KIND: dict[str, AlertSeverity] = {
    MarketAlertKind.PRICE_ANOMALY: AlertSeverity.WARNING,
    MarketAlertKind.VOLUME_ANOMALY: AlertSeverity.INFO,
    MarketAlertKind.VOLATILITY_ANOMALY: AlertSeverity.WARNING,
    RiskAlertKind.STOP_LOSS: AlertSeverity.CRITICAL,
    RiskAlertKind.TAKE_PROFIT: AlertSeverity.WARNING,
    RiskAlertKind.POSITION_LIMIT: AlertSeverity.ERROR,
    RiskAlertKind.INDUSTRY_LIMIT: AlertSeverity.ERROR,
    SystemAlertKind.PERFORMANCE: AlertSeverity.ERROR,
    SystemAlertKind.RESOURCE: AlertSeverity.WARNING,
    SystemAlertKind.NETWORK: AlertSeverity.ERROR,
}

SYSTEM_SUBJECT = "system"


@dataclass(frozen=True, slots=True)
class Alert:
    """Immutable alert; `subject` is a symbol, or None for system alerts."""

    category: ClassVar[AlertCategory]

    kind: str
    severity: AlertSeverity
    message: str
    subject: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=now_utc)

    @property
    def throttle_key(self) -> str:
        return self.subject or SYSTEM_SUBJECT

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": str(self.category),
            "kind": str(self.kind),
            "severity": str(self.severity),
            "subject": self.subject,
            "message": self.message,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class MarketAlert(Alert):
    category: ClassVar[AlertCategory] = AlertCategory.MARKET


@dataclass(frozen=True, slots=True)
class RiskAlert(Alert):
    category: ClassVar[AlertCategory] = AlertCategory.RISK


@dataclass(frozen=True, slots=True)
class SystemAlert(Alert):
    category: ClassVar[AlertCategory] = AlertCategory.SYSTEM


def make_alert(
    kind: MarketAlertKind | RiskAlertKind | SystemAlertKind,
    message: str,
    subject: str | None = None,
    payload: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> Alert:
    if isinstance(kind, MarketAlertKind):
        cls: type[Alert] = MarketAlert
    elif isinstance(kind, RiskAlertKind):
        cls = RiskAlert
    else:
        cls = SystemAlert
    return cls(
        kind=kind,
        severity=SEVERITY_BY_KIND.get(kind, AlertSeverity.INFO),
        message=message,
        subject=subject,
        payload=dict(payload or {}),
        timestamp=timestamp or now_utc(),
    )
