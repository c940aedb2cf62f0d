"""Real-time monitoring, alert throttling and alert sinks."""

from .alerts import (
    Alert,
    AlertCategory,
    AlertSeverity,
    MarketAlert,
    MarketAlertKind,
    RiskAlert,
    RiskAlertKind,
    SystemAlert,
    SystemAlertKind,
    make_alert,
)
from .monitor import MonitorStatus, RealTimeMonitor
from .sinks import AlertRouter, AlertSink, FileAlertSink, LoggingAlertSink, MemoryAlertSink
from .throttle import AlertThrottle, AlertThrottleState

__all__ = [
    "Alert",
    "AlertCategory",
    "AlertRouter",
    "AlertSeverity",
    "AlertSink",
    "AlertThrottle",
    "AlertThrottleState",
    "FileAlertSink",
    "LoggingAlertSink",
    "MarketAlert",
    "MarketAlertKind",
    "MemoryAlertSink",
    "MonitorStatus",
    "RealTimeMonitor",
    "RiskAlert",
    "RiskAlertKind",
    "SystemAlert",
    "SystemAlertKind",
    "make_alert",
]
