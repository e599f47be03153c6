from datetime import datetime, timezone
from typing import Optional
import logging

from api.services.activity_log import ActivityLog, ActivityLogEntry
from api.services.exceptions import StoreUnavailable, TargetNotFound, ValidationError
from api.services.monitor_scheduler import MonitorScheduler, validate_interval
from api.services.probe_service import ProbeExecutor, ProbeResult
from api.services.target_registry import Target, TargetRegistry
from db.repositories.state_repository import MonitorSnapshot, StateRepository

logger = logging.getLogger(__name__)


def _result_payload(target: Target, result: ProbeResult) -> dict:
    return {
        "id": target.id,
        "url": target.url,
        "classification": result.classification.value,
        "latency_ms": result.latency_ms,
        "http_status": result.http_status,
        "detail": result.detail,
        "via_fallback": result.via_fallback,
    }


def _stored_interval(value) -> int:
    try:
        return validate_interval(value)
    except ValidationError:
        logger.warning(f"Ignoring invalid stored interval {value!r}, using 1 minute")
        return 1


class MonitorService:
    def __init__(
        self,
        state_repo: Optional[StateRepository],
        executor: Optional[ProbeExecutor] = None,
        registry: Optional[TargetRegistry] = None,
        activity_log: Optional[ActivityLog] = None,
    ):
        self.state_repo = state_repo
        self.registry = registry or TargetRegistry()
        self.activity_log = activity_log or ActivityLog()
        self.scheduler = MonitorScheduler(
            self.registry,
            self.activity_log,
            executor or ProbeExecutor(),
            store=state_repo,
        )
        self._resume_requested = False
        # True once memory holds what the store held; from then on memory wins
        self._state_loaded = False

    # -- bootstrap -------------------------------------------------------------

    def load_state(self) -> MonitorSnapshot:
        """Load the persisted state, initializing the store on first access."""
        snapshot = None
        if self.state_repo is not None:
            try:
                snapshot = self.state_repo.get()
                self._state_loaded = True
                if snapshot is None:
                    logger.info("No persisted monitor state, initializing defaults")
                    snapshot = MonitorSnapshot()
                    self.state_repo.set(snapshot)
            except StoreUnavailable as e:
                logger.error(f"State store unavailable on startup, continuing in memory: {e}")
                self.activity_log.append(f"✗ State store unavailable: {e}", "error")
        if snapshot is None:
            snapshot = MonitorSnapshot()

        self.registry.load(snapshot.targets)
        self.scheduler.interval_minutes = _stored_interval(snapshot.interval_minutes)
        self._resume_requested = snapshot.running
        logger.info(
            f"Loaded {len(snapshot.targets)} target(s), interval {snapshot.interval_minutes} minute(s), "
            f"running={snapshot.running}"
        )
        return snapshot

    def resume(self) -> bool:
        """Restart monitoring if it was running when the state was saved"""
        if not self._resume_requested:
            return False
        self._resume_requested = False
        if self.scheduler.start():
            self.activity_log.append("▶ Monitoring resumed automatically", "info")
            return True
        # Nothing to monitor; make the store agree
        self.scheduler.persist()
        return False

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    # -- targets ---------------------------------------------------------------

    def add_target(self, url: str) -> Target:
        target = self.registry.add(url)
        logger.info(f"Target added: {target.url}")
        self.activity_log.append(f"+ Target added: {target.url}", "info")
        self.scheduler.persist()
        return target

    def remove_target(self, target_id: str) -> Target:
        target = self.registry.remove(target_id)
        if target is None:
            raise TargetNotFound(f"Target {target_id} not found")
        logger.info(f"Target removed: {target.url}")
        self.activity_log.append(f"- Target removed: {target.url}", "info")
        self.scheduler.persist()
        return target

    def list_targets(self) -> list[Target]:
        return self.registry.list()

    async def probe_now(self, target_id: str) -> tuple[Target, ProbeResult]:
        target, result = await self.scheduler.probe_target(target_id)
        if target is None:
            # removed while the probe was running
            raise TargetNotFound(f"Target {target_id} not found")
        return target, result

    # -- monitoring ------------------------------------------------------------

    def get_config(self) -> dict:
        return {
            "interval_minutes": self.scheduler.interval_minutes,
            "running": self.scheduler.running,
        }

    def start_monitoring(self) -> bool:
        return self.scheduler.start()

    def stop_monitoring(self) -> None:
        self.scheduler.stop()

    def set_interval(self, minutes: int) -> dict:
        self.scheduler.set_interval(minutes)
        return self.get_config()

    def snapshot(self) -> MonitorSnapshot:
        return self.scheduler.snapshot()

    async def trigger_round(self) -> dict:
        """
        Run exactly one round driven by the persisted running flag.
        Skipped when monitoring is stopped or there is nothing to probe.

        Targets come from memory. The store only seeds the registry when this
        process has never loaded it; results are then written back, so memory
        overwrites whatever the store missed during an outage.
        """
        snapshot = None
        if self.state_repo is not None:
            try:
                snapshot = self.state_repo.get()
            except StoreUnavailable as e:
                logger.error(f"Trigger could not read state, using in-memory state: {e}")
        if snapshot is None:
            snapshot = self.scheduler.snapshot()
        elif not self._state_loaded:
            if len(self.registry) == 0:
                self.registry.load(snapshot.targets)
                self.scheduler.interval_minutes = _stored_interval(snapshot.interval_minutes)
            self._state_loaded = True

        if not snapshot.running:
            logger.info("Trigger skipped: monitoring is stopped")
            return {"skipped": True, "reason": "monitoring is stopped"}
        if len(self.registry) == 0:
            logger.info("Trigger skipped: no targets")
            return {"skipped": True, "reason": "no targets"}

        outcomes = await self.scheduler.run_round(running=snapshot.running)
        return {
            "skipped": False,
            "probed": len(outcomes),
            "triggered_at": datetime.now(timezone.utc).isoformat(),
            "results": [_result_payload(target, result) for target, result in outcomes],
        }

    # -- activity --------------------------------------------------------------

    def activity(self) -> list[ActivityLogEntry]:
        return self.activity_log.entries()

    def clear_activity(self) -> None:
        self.activity_log.clear()
