import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from api.services.activity_log import ActivityLog
from api.services.exceptions import StoreUnavailable, TargetNotFound, ValidationError
from api.services.probe_service import Classification, ProbeExecutor, ProbeResult
from api.services.target_registry import Target, TargetRegistry
from db.repositories.state_repository import MonitorSnapshot

logger = logging.getLogger(__name__)

PROBE_ROUND_JOB_ID = "probe_round_job"


def validate_interval(minutes) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
        raise ValidationError("interval_minutes must be an integer >= 1")
    return minutes


def describe_result(url: str, result: ProbeResult) -> tuple[str, str]:
    """Turn a probe result into an activity log (message, severity) pair."""
    if result.classification == Classification.SUCCESS:
        return f"✓ {url} - server responding ({result.latency_ms}ms)", "success"
    if result.classification == Classification.WARNING:
        return f"⚠ {url} - slow response ({result.latency_ms}ms)", "warning"
    reason = result.detail or "unreachable"
    return f"✗ {url} - error: {reason}", "error"


class MonitorScheduler:
    """
    Drives probing rounds for every target in the registry.

    A round is fire-and-forget: the interval job only spawns one task per
    target and returns, so a hanging probe never delays the next tick or the
    other targets. Rounds may overlap when probes outlive the interval.

    Lifecycle:
        scheduler = MonitorScheduler(registry, activity_log, executor, store)
        scheduler.start()   # needs a running event loop
        ...
        scheduler.stop()
        scheduler.shutdown()
    """

    def __init__(
        self,
        registry: TargetRegistry,
        activity_log: ActivityLog,
        executor: ProbeExecutor,
        store=None,
        interval_minutes: int = 1,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.registry = registry
        self.activity_log = activity_log
        self.executor = executor
        self.store = store
        self.interval_minutes = validate_interval(interval_minutes)
        self._scheduler = scheduler or AsyncIOScheduler()
        self._scheduler.add_listener(self._job_error_listener, EVENT_JOB_ERROR)
        self._running = False
        self._inflight: set[asyncio.Task] = set()
        self._writes: set[asyncio.Task] = set()
        self._persist_lock = threading.Lock()

    # -- lifecycle -------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def job(self):
        return self._scheduler.get_job(PROBE_ROUND_JOB_ID)

    def start(self) -> bool:
        if self._running:
            return True
        if len(self.registry) == 0:
            logger.info("Refusing to start monitoring with no targets")
            return False
        if not self._scheduler.running:
            self._scheduler.start()
        self._scheduler.add_job(
            self._tick,
            "interval",
            minutes=self.interval_minutes,
            id=PROBE_ROUND_JOB_ID,
            replace_existing=True,
        )
        self._running = True
        logger.info(f"Monitoring started, probing every {self.interval_minutes} minute(s)")
        self.activity_log.append("▶ Monitoring started", "info")
        self.launch_round()
        self._persist_soon()
        return True

    def stop(self) -> None:
        if self.job() is not None:
            self._scheduler.remove_job(PROBE_ROUND_JOB_ID)
        if self._running:
            self._running = False
            logger.info(f"Monitoring paused, {self.inflight} probe(s) still in flight")
            self.activity_log.append("⏸ Monitoring paused", "info")
        self._persist_soon()

    def set_interval(self, minutes: int) -> None:
        self.interval_minutes = validate_interval(minutes)
        if self._running and self.job() is not None:
            # A fresh full period starts now; in-flight probes are left alone.
            self._scheduler.reschedule_job(PROBE_ROUND_JOB_ID, trigger="interval", minutes=minutes)
        logger.info(f"Probe interval set to {minutes} minute(s)")
        self.activity_log.append(f"Interval set to {minutes} minute(s)", "info")
        self._persist_soon()

    def shutdown(self) -> None:
        """Stop the timer for good and cancel whatever is still probing."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        for task in list(self._inflight):
            task.cancel()

    # -- rounds ----------------------------------------------------------------

    async def _tick(self):
        logger.info(f"Scheduled probe round for {len(self.registry)} target(s)")
        self.launch_round()

    def launch_round(self) -> list[asyncio.Task]:
        return [self._spawn(target) for target in self.registry.list()]

    async def run_round(self, running: Optional[bool] = None) -> list[tuple[Target, ProbeResult]]:
        """
        Probe every target and wait for all of them.
        running overrides the flag persisted with each result, for rounds
        driven by an external trigger while the local timer is off.
        """
        targets = self.registry.list()
        tasks = [self._spawn(target, running) for target in targets]
        results = await asyncio.gather(*tasks)
        return list(zip(targets, results))

    async def probe_target(self, target_id: str) -> tuple[Target | None, ProbeResult]:
        target = self.registry.get(target_id)
        if target is None:
            raise TargetNotFound(f"Target {target_id} not found")
        result = await self._spawn(target)
        return self.registry.get(target_id), result

    def _spawn(self, target: Target, running: Optional[bool] = None) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._probe(target, running))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _probe(self, target: Target, running: Optional[bool] = None) -> ProbeResult:
        result = await self.executor.probe(target.url)
        updated = self.registry.apply_probe_result(target.id, result, datetime.now(timezone.utc))
        message, severity = describe_result(target.url, result)
        self.activity_log.append(message, severity)
        if updated is None:
            logger.info(f"Dropping probe result for removed target {target.url}")
            return result
        logger.info(f"Probed {target.url}: {result.classification.value} ({result.latency_ms}ms)")
        await asyncio.to_thread(self.persist, running)
        return result

    # -- persistence -----------------------------------------------------------

    def snapshot(self, running: Optional[bool] = None) -> MonitorSnapshot:
        return MonitorSnapshot(
            targets=self.registry.list(),
            interval_minutes=self.interval_minutes,
            running=self._running if running is None else running,
        )

    def persist(self, running: Optional[bool] = None) -> bool:
        """
        Write the current snapshot to the store. Blocking; called from worker
        threads while the event loop is running.
        """
        if self.store is None:
            return False
        try:
            # Snapshot under the lock so a later write never carries older state
            with self._persist_lock:
                self.store.set(self.snapshot(running))
            return True
        except StoreUnavailable as e:
            logger.error(f"Failed to persist monitor state: {e}")
            self.activity_log.append(f"✗ State store unavailable: {e}", "error")
            return False

    def _persist_soon(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.persist()
            return
        task = loop.create_task(asyncio.to_thread(self.persist))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    def _job_error_listener(self, event):
        logger.error(f"Probe round job crashed: {event.exception}")
