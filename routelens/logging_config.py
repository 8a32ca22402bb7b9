"""Logging configuration for RouteLens."""

import logging
import os
import sys
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

DEFAULT_RING_CAPACITY = 1000


@dataclass(frozen=True)
class LogEntry:
    """One captured log line."""

    timestamp: datetime
    level: str
    message: str
    source: str


class LogRingBuffer(logging.Handler):
    """Keeps the most recent log records in memory, oldest dropped first."""

    def __init__(self, capacity: int = DEFAULT_RING_CAPACITY, level=logging.NOTSET):
        super().__init__(level)
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                level=record.levelname,
                message=record.getMessage(),
                source=record.name,
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def entries(self) -> list[LogEntry]:
        """All buffered entries in chronological order."""
        with self._entries_lock:
            return list(self._entries)

    def last(self, n: int) -> list[LogEntry]:
        """The n most recent entries."""
        if n <= 0:
            return []
        return self.entries()[-n:]

    def by_level(self, *levels: str) -> list[LogEntry]:
        """Entries whose level name is one of levels."""
        wanted = {level.upper() for level in levels}
        return [e for e in self.entries() if e.level in wanted]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


def configure_logging(ring_capacity: int = DEFAULT_RING_CAPACITY) -> LogRingBuffer:
    """Configure application-wide logging.

    Respects ROUTELENS_LOG_LEVEL environment variable (default: INFO).
    Logs to stderr with timestamp, level, module name, and message, and
    mirrors every record into an in-memory ring buffer.

    Environment Variables:
        ROUTELENS_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                             Default is INFO.

    Examples:
        # Default INFO level
        $ python -m routelens

        # Debug level for troubleshooting
        $ ROUTELENS_LOG_LEVEL=DEBUG python -m routelens

    Returns:
        The ring buffer handler attached to the root logger
    """
    # Get log level from environment, default to INFO
    log_level_str = os.environ.get("ROUTELENS_LOG_LEVEL", "INFO").upper()

    # Map string to logging constant
    log_level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }

    log_level = log_level_map.get(log_level_str, logging.INFO)

    ring = LogRingBuffer(ring_capacity)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,  # Override any existing configuration
    )
    logging.getLogger().addHandler(ring)

    # Log the configuration for visibility
    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s", logging.getLevelName(log_level))
    return ring
