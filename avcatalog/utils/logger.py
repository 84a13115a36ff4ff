"""Logging setup for avcatalog."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import get_config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def is_crawler_record(record) -> bool:
    """Records emitted by the ingestion pipeline (crawlers and API clients)."""
    return (record.get("name") or "").startswith("avcatalog.crawlers")


def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None):
    """Configure loguru sinks.

    Besides stderr and the main log file, crawler output is also written to
    crawl.log next to the main file so ingestion runs can be followed on
    their own.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file; empty string disables both file sinks
    """
    config = get_config()

    logger.remove()

    if log_level is None:
        log_level = config.logging.level

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True)

    if log_file is None:
        log_file = config.logging.file

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        for path, record_filter in ((log_path, None), (log_path.with_name("crawl.log"), is_crawler_record)):
            logger.add(
                str(path),
                format=FILE_FORMAT,
                level=log_level,
                filter=record_filter,
                rotation="10 MB",
                retention="30 days",
                compression="zip",
                encoding="utf-8",
            )

    logger.info(f"Logging initialized at {log_level} level")
