"""Alert sinks and severity routing for monitor subscribers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
from pathlib import Path
import threading

from loguru import logger

from .alerts import Alert, AlertSeverity

LOG_LEVEL_BY_SEVERITY = {
    AlertSeverity.INFO: "INFO",
    AlertSeverity.WARNING: "WARNING",
    AlertSeverity.ERROR: "ERROR",
    AlertSeverity.CRITICAL: "CRITICAL",
}


class AlertSink(ABC):
    """Abstract sink for alerts."""

    @abstractmethod
    def send(self, alert: Alert) -> None:
        """Deliver one alert."""

    def __call__(self, alert: Alert) -> None:
        self.send(alert)


class LoggingAlertSink(AlertSink):
    """Write alerts to the application log at a matching level."""

    def send(self, alert: Alert) -> None:
        logger.bind(alert=alert.to_dict()).log(
            LOG_LEVEL_BY_SEVERITY[alert.severity],
            "[{}] {} {}: {}",
            alert.category,
            alert.kind,
            alert.subject or "-",
            alert.message,
        )


class FileAlertSink(AlertSink):
    """Persist alerts as JSONL for audit and incident review."""

    def __init__(self, output_path: str | Path) -> None:
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def send(self, alert: Alert) -> None:
        line = json.dumps(alert.to_dict(), default=str) + "\n"
        with self._lock, self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(line)


class MemoryAlertSink(AlertSink):
    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def send(self, alert: Alert) -> None:
        self.alerts.append(alert)


@dataclass(slots=True)
class AlertRouter(AlertSink):
    """
    Routes alerts by severity to configured sinks.

    default_sinks are always used; severity_sinks are additive. Register the
    router itself as a monitor subscriber.
    """

    default_sinks: list[AlertSink] = field(default_factory=list)
    severity_sinks: dict[AlertSeverity, list[AlertSink]] = field(default_factory=dict)

    def send(self, alert: Alert) -> None:
        sinks: list[AlertSink] = list(self.default_sinks)
        sinks.extend(self.severity_sinks.get(alert.severity, []))
        for sink in sinks:
            sink.send(alert)

    @staticmethod
    def with_log_and_file(file_path: str | Path) -> "AlertRouter":
        return AlertRouter(default_sinks=[LoggingAlertSink(), FileAlertSink(file_path)])
