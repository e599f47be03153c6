from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.services.exceptions import StoreUnavailable
from api.services.target_registry import Target
from db.models.target import TargetRecord
from db.repositories.settings_repository import SettingsRepository

logger = logging.getLogger(__name__)

INTERVAL_KEY = "interval_minutes"
RUNNING_KEY = "running"


@dataclass
class MonitorSnapshot:
    targets: list = field(default_factory=list)
    interval_minutes: int = 1
    running: bool = False


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StateRepository:
    """
    Durable store for the whole monitor state.

    set() writes a full snapshot in one transaction (last write wins);
    get() returns None until the first snapshot has been written.
    Database failures surface as StoreUnavailable.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self) -> Optional[MonitorSnapshot]:
        db = self.session_factory()
        try:
            settings_repo = SettingsRepository(db)
            interval = settings_repo.get_setting(INTERVAL_KEY)
            running = settings_repo.get_setting(RUNNING_KEY)
            records = db.query(TargetRecord).order_by(TargetRecord.position).all()
            if interval is None and running is None and not records:
                return None
            targets = [
                Target(
                    id=r.id,
                    url=r.url,
                    status=r.status,
                    last_probe_at=_as_utc(r.last_probe_at),
                    last_latency_ms=r.last_latency_ms,
                    consecutive_errors=r.consecutive_errors or 0,
                    last_error=r.last_error,
                    last_http_status=r.last_http_status,
                )
                for r in records
            ]
            return MonitorSnapshot(
                targets=targets,
                interval_minutes=int(interval) if interval else 1,
                running=running == "true",
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to read monitor state: {e}")
            raise StoreUnavailable(f"read failed: {e}") from e
        finally:
            db.close()

    def set(self, snapshot: MonitorSnapshot) -> None:
        db = self.session_factory()
        try:
            db.query(TargetRecord).delete()
            for position, target in enumerate(snapshot.targets):
                db.add(
                    TargetRecord(
                        id=target.id,
                        position=position,
                        url=target.url,
                        status=target.status,
                        last_probe_at=target.last_probe_at,
                        last_latency_ms=target.last_latency_ms,
                        consecutive_errors=target.consecutive_errors,
                        last_error=target.last_error,
                        last_http_status=target.last_http_status,
                    )
                )
            settings_repo = SettingsRepository(db)
            settings_repo.set_setting(INTERVAL_KEY, str(snapshot.interval_minutes), commit=False)
            settings_repo.set_setting(RUNNING_KEY, "true" if snapshot.running else "false", commit=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to write monitor state: {e}")
            raise StoreUnavailable(f"write failed: {e}") from e
        finally:
            db.close()
