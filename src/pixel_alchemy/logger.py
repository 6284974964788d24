"""
Unified logging module.
Uses loguru for a consistent logging interface, with optional log file output.
"""
from typing import Optional
from loguru import logger
import sys
from pathlib import Path

from pixel_alchemy.config import get_settings


def get_log_file_path(log_dir: str) -> str:
    """Get the log file path inside the configured log directory"""
    path = Path(log_dir).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return str(path / "pixel_alchemy.log")


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None):
    """
    (Re)configure the global loguru logger.

    Args:
        level: console level, defaults to the PIXEL_ALCHEMY_LOG_LEVEL setting
        log_dir: directory for the rotating log file; no file output when empty
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    log_dir = log_dir if log_dir is not None else settings.log_dir

    logger.remove()  # drop the default handler

    # Console output (only when a stderr exists, e.g. not in frozen GUI hosts)
    if sys.stderr is not None:
        logger.add(
            sys.stderr,
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            level=level,
            colorize=True
        )

    # File output (daily rotation, keep the last 7 days)
    if log_dir:
        logger.add(
            get_log_file_path(log_dir),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            encoding="utf-8"
        )


setup_logging()


class LoguruHandler:
    """Global loguru logger with every message prefixed by a job identifier"""

    def __init__(self, file_id: Optional[str] = None):
        self.file_id = file_id

    def _output(self, message: str, level: str):
        if self.file_id:
            message = f"[{self.file_id}] {message}"
        # depth=2 reports the caller of success()/error()/debug(), not this wrapper
        logger.opt(depth=2).log(level, message)

    def success(self, message: str):
        self._output(message, "SUCCESS")

    def error(self, message: str):
        self._output(message, "ERROR")

    def debug(self, message: str):
        self._output(message, "DEBUG")


def create_logger(file_id: Optional[str] = None) -> LoguruHandler:
    """Factory for per-job LoguruHandler instances"""
    return LoguruHandler(file_id)
