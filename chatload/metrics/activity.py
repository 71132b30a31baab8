"""Bounded recent-activity log shown under the live metrics table."""

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

import structlog

logger = structlog.get_logger()

DEFAULT_CAPACITY = 10


class Severity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"


# structlog method used to mirror each severity
_LOG_METHODS: dict[Severity, str] = {
    Severity.INFO: "info",
    Severity.SUCCESS: "info",
    Severity.WARN: "warning",
    Severity.ERROR: "error",
}


@dataclass(frozen=True)
class ActivityEntry:
    level: Severity
    message: str


class ActivityLog:
    """FIFO of the last ``capacity`` activity lines; oldest entries fall off.

    Every entry is also emitted through structlog so nothing is lost when the
    console reporter is disabled.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: deque[ActivityEntry] = deque(maxlen=capacity)

    def log(self, level: Severity | str, message: str, **context) -> ActivityEntry:
        level = Severity(level)
        stamp = self._clock().strftime("%H:%M:%S")
        entry = ActivityEntry(level=level, message=f"[{stamp}] {message}")
        with self._lock:
            self._entries.append(entry)
        log_method = getattr(logger, _LOG_METHODS[level])
        log_method("activity", message=message, severity=level.value, **context)
        return entry

    def info(self, message: str, **context) -> ActivityEntry:
        return self.log(Severity.INFO, message, **context)

    def success(self, message: str, **context) -> ActivityEntry:
        return self.log(Severity.SUCCESS, message, **context)

    def warn(self, message: str, **context) -> ActivityEntry:
        return self.log(Severity.WARN, message, **context)

    def error(self, message: str, **context) -> ActivityEntry:
        return self.log(Severity.ERROR, message, **context)

    def entries(self) -> list[ActivityEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
