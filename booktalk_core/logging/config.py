# =============================================================================
# booktalk_core/logging/config.py
# Logging for the Journal Layer
# =============================================================================
"""
Logging setup for BookTalk.

Library code only ever asks for loggers (``get_logger(__name__)``); the
process that hosts the journal decides where records go, normally through
``AppSettings.configure_logging()``:

    BOOKTALK_LOG_LEVEL=debug
    BOOKTALK_LOG_FILE=local_data/booktalk.log

Store round trips are timed with ``LogContext``, labelled with the store
that served them:

    local  | add book... completed (0.00s)
    cloud  | send message... failed (1.02s): Service unavailable
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "booktalk_core"

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# HTTP and SDK clients underneath supabase-py and openai
CLIENT_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest", "gotrue", "openai")


def resolve_level(level: Union[int, str]) -> int:
    """Turn ``"debug"`` / ``"INFO"`` / ``10`` into a logging level number."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    client_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Route log records to stdout and, optionally, a file.

    Args:
        level: Level name or number for the whole process
        log_file: Also append to this file (parent directories are created)
        client_level: Floor for the HTTP/SDK client loggers

    Returns:
        The ``booktalk_core`` package logger
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Replace whatever the host configured before
    )

    for name in CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.info(
        f"Logging initialized at {logging.getLevelName(resolve_level(level))}"
        + (f", file {log_file}" if log_file is not None else "")
    )
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from booktalk_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Loading books")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Time one store round trip.

    Usage:
        with LogContext(logger, "send message", store="cloud"):
            await store.record_message(message, book)
        # DEBUG "send message [cloud]... started"
        # DEBUG "send message [cloud]... completed (0.12s)"

    A failure is logged at WARNING and re-raised; retries and rollback are
    the caller's business.
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        store: Optional[str] = None,
        level: int = logging.DEBUG,
    ):
        self.logger = logger
        self.operation = operation
        self.store = store
        self.level = level
        self.start_time: Optional[float] = None

    @property
    def label(self) -> str:
        return f"{self.operation} [{self.store}]" if self.store else self.operation

    @property
    def elapsed(self) -> float:
        """Seconds since the context was entered."""
        if self.start_time is None:
            return 0.0
        return time.perf_counter() - self.start_time

    def __enter__(self) -> "LogContext":
        self.start_time = time.perf_counter()
        self.logger.log(self.level, f"{self.label}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.logger.log(self.level, f"{self.label}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.warning(f"{self.label}... failed ({self.elapsed:.2f}s): {exc_val}")
        return False
