import itertools
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

ACTIVITY_LOG_CAPACITY = 50

SEVERITIES = ("success", "warning", "error", "info")


@dataclass(frozen=True)
class ActivityLogEntry:
    id: int
    timestamp: datetime
    message: str
    severity: str


class ActivityLog:
    """Most-recent-first ring buffer of human readable monitoring events."""

    def __init__(self, capacity: int = ACTIVITY_LOG_CAPACITY):
        self.capacity = capacity
        self._entries: deque[ActivityLogEntry] = deque(maxlen=capacity)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, message: str, severity: str = "info") -> ActivityLogEntry:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        with self._lock:
            entry = ActivityLogEntry(
                id=next(self._ids),
                timestamp=datetime.now(timezone.utc),
                message=message,
                severity=severity,
            )
            # deque(maxlen) drops from the right, i.e. the oldest entry
            self._entries.appendleft(entry)
        return entry

    def entries(self) -> list[ActivityLogEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
