"""Per-subject alert rate limiting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from dividend_value_system.ledger.keyed_state import KeyedStateStore
from dividend_value_system.performance import PerformanceMetricsAggregator

WINDOW = timedelta(hours=1)


@dataclass(slots=True)
class AlertThrottleState:
    last_alert_time: datetime | None = None
    window_start: datetime | None = None
    window_count: int = 0


class AlertThrottle:
    """
    Minimum spacing plus an hourly cap per subject.

    The window opens at the first alert emitted in it and rolls over once an
    hour has elapsed. The check and the counter update happen under the
    subject's lock, so two callers can never both win the same slot.
    """

    def __init__(
        self,
        alert_interval_seconds: float = 60.0,
        max_alerts_per_hour: int = 10,
        metrics: PerformanceMetricsAggregator | None = None,
    ) -> None:
        self.alert_interval = timedelta(seconds=alert_interval_seconds)
        self.max_alerts_per_hour = max_alerts_per_hour
        self.metrics = metrics
        self._states: KeyedStateStore[AlertThrottleState] = KeyedStateStore()

    def try_acquire(self, subject: str, now: datetime) -> bool:
        with self._states.entry(subject, AlertThrottleState) as slot:
            state = slot.value
            if state.window_start is not None and now - state.window_start >= WINDOW:
                state.window_start = None
                state.window_count = 0

            reason = None
            if state.last_alert_time is not None and now - state.last_alert_time < self.alert_interval:
                reason = "interval"
            elif state.window_count >= self.max_alerts_per_hour:
                reason = "hourly_cap"

            if reason is None:
                state.last_alert_time = now
                if state.window_start is None:
                    state.window_start = now
                state.window_count += 1
                return True
            count = state.window_count

        if self.metrics is not None:
            self.metrics.record_suppressed_alert(subject)
        logger.debug("alert for {} throttled ({}): {} alerts in current window", subject, reason, count)
        return False

    def state(self, subject: str) -> AlertThrottleState | None:
        value = self._states.get(subject)
        if value is None:
            return None
        return AlertThrottleState(value.last_alert_time, value.window_start, value.window_count)
