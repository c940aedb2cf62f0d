"""Rolling-window latency, API success and resource statistics."""

from __future__ import annotations

from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass
import threading
import time
from typing import Any, Callable, Iterator

import numpy as np
import psutil
from loguru import logger

WINDOW_SIZE = 1000


@dataclass(slots=True)
class ExecutionMetrics:
    execution_count: int = 0
    average_ms: float = 0.0
    max_ms: float = 0.0
    min_ms: float = 0.0


@dataclass(slots=True)
class ApiCallMetrics:
    call_count: int = 0
    average_response_ms: float = 0.0
    max_response_ms: float = 0.0
    min_response_ms: float = 0.0
    success_rate: float = 1.0
    error_count: int = 0


@dataclass(slots=True)
class ResourceMetrics:
    cpu_percent: float
    memory_mb: float
    thread_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cpu_percent": self.cpu_percent,
            "memory_mb": self.memory_mb,
            "thread_count": self.thread_count,
        }


def sample_process_resources() -> ResourceMetrics:
    process = psutil.Process()
    return ResourceMetrics(
        cpu_percent=float(process.cpu_percent(interval=None)),
        memory_mb=float(process.memory_info().rss) / (1024.0 * 1024.0),
        thread_count=int(process.num_threads()),
    )


class PerformanceMetricsAggregator:
    """
    Thread-safe rolling statistics feeding the monitor's system-health checks.

    Only the most recent WINDOW_SIZE samples per name are retained.
    """

    def __init__(
        self,
        window_size: int = WINDOW_SIZE,
        resource_sampler: Callable[[], ResourceMetrics] | None = None,
    ) -> None:
        self.window_size = window_size
        self.resource_sampler = resource_sampler or sample_process_resources
        self._lock = threading.Lock()
        self._executions: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=self.window_size))
        self._api_calls: dict[str, deque[tuple[float, bool]]] = defaultdict(lambda: deque(maxlen=self.window_size))
        self._suppressed_alerts: dict[str, int] = defaultdict(int)

    def record_execution(self, name: str, seconds: float) -> None:
        with self._lock:
            self._executions[name].append(float(seconds) * 1000.0)
        logger.debug("execution {} took {:.2f}ms", name, seconds * 1000.0)

    def record_api_call(self, name: str, seconds: float, success: bool) -> None:
        with self._lock:
            self._api_calls[name].append((float(seconds) * 1000.0, bool(success)))
        logger.debug("api call {} took {:.2f}ms success={}", name, seconds * 1000.0, success)

    def record_suppressed_alert(self, subject: str) -> None:
        with self._lock:
            self._suppressed_alerts[subject] += 1

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_execution(name, time.perf_counter() - started)

    def execution_metrics(self, name: str | None = None) -> ExecutionMetrics:
        with self._lock:
            if name is not None:
                samples = list(self._executions.get(name, ()))
            else:
                samples = [value for queue in self._executions.values() for value in queue]
        if not samples:
            return ExecutionMetrics()
        values = np.asarray(samples, dtype=float)
        return ExecutionMetrics(
            execution_count=int(values.size),
            average_ms=float(values.mean()),
            max_ms=float(values.max()),
            min_ms=float(values.min()),
        )

    def api_metrics(self, name: str | None = None) -> ApiCallMetrics:
        with self._lock:
            if name is not None:
                samples = list(self._api_calls.get(name, ()))
            else:
                samples = [value for queue in self._api_calls.values() for value in queue]
        if not samples:
            return ApiCallMetrics()
        latencies = np.asarray([latency for latency, _ in samples], dtype=float)
        successes = np.asarray([ok for _, ok in samples], dtype=bool)
        return ApiCallMetrics(
            call_count=int(latencies.size),
            average_response_ms=float(latencies.mean()),
            max_response_ms=float(latencies.max()),
            min_response_ms=float(latencies.min()),
            success_rate=float(successes.mean()),
            error_count=int((~successes).sum()),
        )

    def resource_metrics(self) -> ResourceMetrics:
        return self.resource_sampler()

    def suppressed_alert_count(self, subject: str | None = None) -> int:
        with self._lock:
            if subject is not None:
                return self._suppressed_alerts.get(subject, 0)
            return sum(self._suppressed_alerts.values())
