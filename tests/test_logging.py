from __future__ import annotations

import json
from pathlib import Path

from loguru import logger

from dividend_value_system.config import LoggingConfig
from dividend_value_system.logs import setup_logging
from dividend_value_system.monitoring import LoggingAlertSink, RiskAlertKind, make_alert


def test_file_sink_writes_structured_records(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "strategy.jsonl"
    setup_logging(LoggingConfig(level="INFO", file_path=str(path), serialize=True))
    try:
        LoggingAlertSink().send(make_alert(RiskAlertKind.STOP_LOSS, "X hit stop-loss", subject="X"))
        logger.debug("filtered out below INFO")
        logger.complete()
    finally:
        logger.remove()

    records = [json.loads(line)["record"] for line in path.read_text(encoding="utf-8").splitlines()]
    levels = [record["level"]["name"] for record in records]
    assert levels == ["INFO", "CRITICAL"]
    assert records[1]["extra"]["alert"]["kind"] == "stop_loss"
