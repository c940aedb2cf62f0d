"""Independent schedules for decision cycles and monitor ticks."""

from __future__ import annotations

from dataclasses import dataclass
import threading

from loguru import logger

from dividend_value_system.errors import CycleAborted
from dividend_value_system.monitoring import RealTimeMonitor
from dividend_value_system.strategy import Action, CycleReport, DecisionEngine


@dataclass(slots=True)
class LoopConfig:
    interval_seconds: float = 60.0
    max_iterations: int | None = None
    stop_on_exception: bool = False


class StrategyLoop:
    """
    Runs one decision cycle per tick.

    An aborted cycle is logged and retried on the next tick. Symbols bought
    by a cycle are added to the monitor's watch list.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        config: LoopConfig | None = None,
        monitor: RealTimeMonitor | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or LoopConfig()
        self.monitor = monitor
        self.stop_event = stop_event or threading.Event()
        self.aborted_cycles = 0

    def run_once(self, cycle_id: str | None = None) -> CycleReport | None:
        try:
            report = self.engine.run_cycle(cycle_id)
        except CycleAborted as exc:
            self.aborted_cycles += 1
            logger.warning("decision cycle aborted ({} so far): {}; retrying next tick", self.aborted_cycles, exc)
            return None
        if self.monitor is not None:
            bought = [d.symbol for d in report.decisions if d.action == Action.BUY]
            if bought:
                self.monitor.watch(*bought)
        return report

    def run_forever(self) -> list[CycleReport]:
        reports: list[CycleReport] = []
        iterations = 0
        while not self.stop_event.is_set():
            try:
                report = self.run_once()
                if report is not None:
                    reports.append(report)
            except Exception:
                logger.exception("decision cycle failed")
                if self.config.stop_on_exception:
                    raise
            iterations += 1
            if self.config.max_iterations is not None and iterations >= self.config.max_iterations:
                break
            self.stop_event.wait(max(self.config.interval_seconds, 0.0))
        return reports

    def stop(self) -> None:
        self.stop_event.set()


class MonitorLoop:
    """Ticks the monitor on its own thread and its own interval."""

    def __init__(
        self,
        monitor: RealTimeMonitor,
        config: LoopConfig | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.monitor = monitor
        self.config = config or LoopConfig(interval_seconds=monitor.config.tick_interval_seconds)
        self.stop_event = stop_event or threading.Event()
        self.ticks = 0
        self._thread: threading.Thread | None = None

    def run_forever(self) -> None:
        while not self.stop_event.is_set():
            try:
                self.monitor.tick()
            except Exception:
                logger.exception("monitor tick failed")
                if self.config.stop_on_exception:
                    raise
            self.ticks += 1
            if self.config.max_iterations is not None and self.ticks >= self.config.max_iterations:
                break
            self.stop_event.wait(max(self.config.interval_seconds, 0.0))

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self.stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="realtime-monitor", daemon=True)
        self._thread.start()
        logger.info("monitor loop started: interval={}s", self.config.interval_seconds)
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("monitor loop stopped after {} ticks", self.ticks)
