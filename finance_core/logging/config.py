# =============================================================================
# finance_core/logging/config.py
# Logging for the Offline Data Layer
# =============================================================================
"""
Log setup shared by the coordinator, the connection monitor and the
finance-offline tool.

Reachability checks run on the "ConnectionMonitor" thread and reconnect
replays on "SyncReplay", so the thread name is part of every line.

Usage:
    setup_logging_from_settings(settings)

    with LogContext(logger, "Replaying queued mutations", pending=3) as run:
        ...
        run.record(synced=2, failed=1)
    # Replaying queued mutations... started [pending=3]
    # Replaying queued mutations... completed (0.42s) [synced=2, failed=1]
"""

import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union


LOG_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# HTTP client chatter on every reachability check and replay call
QUIET_LOGGERS = ("urllib3", "requests")


def _log_file_path(log_dir: Path, log_filename: Optional[str]) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / (log_filename or f"offline_sync_{date.today():%Y-%m-%d}.log")


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = False,
    log_dir: Optional[Path] = None,
    log_filename: Optional[str] = None,
) -> None:
    """
    Configure logging for the offline data layer.

    Args:
        level: Level for the finance_core loggers, as int or name
        log_to_file: Also write to a daily file under log_dir
        log_dir: Directory for the log file (default: ./logs)
        log_filename: File name (default: offline_sync_YYYY-MM-DD.log)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_to_file:
        handlers.append(logging.FileHandler(_log_file_path(log_dir or LOG_DIR, log_filename)))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger("finance_core").debug(
        f"Logging configured at {logging.getLevelName(level)}"
        + (f", file {handlers[-1].baseFilename}" if log_to_file else "")
    )


def setup_logging_from_settings(settings, level: Union[int, str, None] = None) -> None:
    """Configure logging from OfflineSettings; an explicit level wins over settings.log_level."""
    setup_logging(
        level=level if level is not None else settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=Path(settings.db_path).parent / "logs",
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _format_fields(fields: Dict[str, Any]) -> str:
    if not fields:
        return ""
    return " [" + ", ".join(f"{key}={value}" for key, value in fields.items()) + "]"


class LogContext:
    """
    Times one operation and logs its start and end.

    Keyword arguments are logged with the start line. Values passed to
    record() while the block runs are logged with the end line, including
    when the block raises. Exceptions are never suppressed.
    """

    def __init__(self, logger: logging.Logger, operation: str, **fields: Any):
        self.logger = logger
        self.operation = operation
        self.fields = fields
        self.outcome: Dict[str, Any] = {}
        self.start_time: Optional[float] = None

    def record(self, **outcome: Any) -> None:
        self.outcome.update(outcome)

    def __enter__(self) -> "LogContext":
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started{_format_fields(self.fields)}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time
        outcome = _format_fields(self.outcome)

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({elapsed:.2f}s){outcome}")
        else:
            self.logger.error(
                f"{self.operation}... failed ({elapsed:.2f}s){outcome}: {exc_val}",
                exc_info=True,
            )

        return False
