import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional

from api.services.exceptions import ValidationError
from api.services.probe_service import Classification, ProbeResult

STATUS_IDLE = "idle"


@dataclass(frozen=True)
class Target:
    id: str
    url: str
    status: str = STATUS_IDLE
    last_probe_at: Optional[datetime] = None
    last_latency_ms: Optional[int] = None
    consecutive_errors: int = 0
    last_error: Optional[str] = None
    last_http_status: Optional[int] = None


def normalize_url(raw: str) -> str:
    if raw is None or not raw.strip():
        raise ValidationError("URL must not be empty")
    url = raw.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        url = "https://" + url
    return url


class TargetRegistry:
    """
    Holds the monitored targets in insertion order.

    Targets are immutable snapshots; every mutation replaces the stored record
    under the lock, so readers never see a half-applied probe result.
    """

    def __init__(self, targets: Iterable[Target] = ()):
        self._lock = threading.RLock()
        self._targets: "OrderedDict[str, Target]" = OrderedDict()
        self.load(targets)

    def __len__(self) -> int:
        with self._lock:
            return len(self._targets)

    def add(self, url: str) -> Target:
        target = Target(id=uuid.uuid4().hex, url=normalize_url(url))
        with self._lock:
            self._targets[target.id] = target
        return target

    def remove(self, target_id: str) -> Target | None:
        with self._lock:
            return self._targets.pop(target_id, None)

    def get(self, target_id: str) -> Target | None:
        with self._lock:
            return self._targets.get(target_id)

    def list(self) -> list[Target]:
        with self._lock:
            return list(self._targets.values())

    def load(self, targets: Iterable[Target]) -> None:
        with self._lock:
            self._targets = OrderedDict((t.id, t) for t in targets)

    def clear(self) -> None:
        with self._lock:
            self._targets.clear()

    def apply_probe_result(self, target_id: str, result: ProbeResult, timestamp: datetime) -> Target | None:
        # A target removed while its probe was in flight stays removed.
        with self._lock:
            current = self._targets.get(target_id)
            if current is None:
                return None
            if result.classification == Classification.SUCCESS:
                updated = replace(
                    current,
                    status=result.classification.value,
                    last_probe_at=timestamp,
                    last_latency_ms=result.latency_ms,
                    consecutive_errors=0,
                    last_error=None,
                    last_http_status=result.http_status,
                )
            else:
                updated = replace(
                    current,
                    status=result.classification.value,
                    last_probe_at=timestamp,
                    last_latency_ms=result.latency_ms,
                    consecutive_errors=current.consecutive_errors + 1,
                    last_error=result.detail,
                    last_http_status=result.http_status,
                )
            self._targets[target_id] = updated
            return updated
