"""Loguru sink configuration."""

from __future__ import annotations

import sys

from loguru import logger

from .config import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(config: LoggingConfig | None = None) -> None:
    cfg = config or LoggingConfig()
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=cfg.level, colorize=True)
    if cfg.file_path:
        logger.add(
            cfg.file_path,
            rotation=cfg.rotation,
            retention=cfg.retention,
            serialize=cfg.serialize,
            level=cfg.level,
        )
    logger.info("Logging initialized at level {}", cfg.level)
