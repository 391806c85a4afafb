"""
Scheduler module for periodic renewal checks.

``PeriodicTask`` runs a coroutine at a fixed interval and can be re-armed
with a new interval without interrupting a run in progress.
``RenewalScheduler.tick`` performs one guarded renewal cycle: it holds the
global run lock for the duration of the cycle and never raises.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .activity_log import ActivityLog
from .audit_logger import AuditLogger
from .discovery import HostDiscovery
from .enums import ActivityKind, LogLevel
from .events import EventBus
from .exceptions import ConfigCorruptError
from .executor import BatchRenewalExecutor
from .models import SYSTEM_DOMAIN, TickResult
from .run_lock import RunLock
from .state_store import ConfigStore


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PeriodicTask:
    """Runs ``callback`` every ``interval`` seconds until stopped."""

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        logger: Optional[AuditLogger] = None,
        name: str = "periodic-task",
    ) -> None:
        self._callback = callback
        self._logger = logger
        self._name = name
        self._interval: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._rearm = asyncio.Event()
        self._stopping = False
        self._in_run = False

    @property
    def interval(self) -> Optional[float]:
        return self._interval

    def is_running(self) -> bool:
        """Check if the task is armed."""
        return self._task is not None and not self._task.done()

    @property
    def in_run(self) -> bool:
        """True while the callback is executing."""
        return self._in_run

    def start(self, interval_seconds: float) -> None:
        """
        Arm the task. The first run happens one interval from now.

        Raises:
            ValueError: If the interval is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be > 0, got {interval_seconds}")
        if self.is_running():
            self.reschedule(interval_seconds)
            return
        self._interval = interval_seconds
        self._stopping = False
        self._rearm = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop())

    def reschedule(self, interval_seconds: float) -> None:
        """Restart the pending wait with a new interval; a running callback continues."""
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be > 0, got {interval_seconds}")
        self._interval = interval_seconds
        if self.is_running():
            self._rearm.set()

    async def stop(self) -> None:
        """Disarm the task, waiting for a callback in progress to finish."""
        task = self._task
        if task is None:
            return
        self._stopping = True
        self._rearm.set()
        if task is asyncio.current_task():
            # Called from the callback: the loop ends when it returns
            self._task = None
            return
        try:
            await task
        finally:
            self._task = None

    def _superseded(self) -> bool:
        return self._stopping or self._task is not asyncio.current_task()

    async def _loop(self) -> None:
        while not self._superseded():
            self._rearm.clear()
            try:
                await asyncio.wait_for(self._rearm.wait(), timeout=self._interval)
                # Re-armed or stopping: start over with the current interval
                continue
            except asyncio.TimeoutError:
                pass

            if self._superseded():
                break

            self._in_run = True
            try:
                await self._callback()
            except Exception as e:
                if self._logger:
                    self._logger.log_error(
                        "PeriodicTask", f"Scheduled run of {self._name} failed", e
                    )
            finally:
                self._in_run = False


class RenewalScheduler:
    """Performs scheduler ticks guarded by the global run lock."""

    def __init__(
        self,
        store: ConfigStore,
        run_lock: RunLock,
        executor: BatchRenewalExecutor,
        discovery: HostDiscovery,
        activity_log: ActivityLog,
        events: Optional[EventBus] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._run_lock = run_lock
        self._executor = executor
        self._discovery = discovery
        self._activity = activity_log
        self._events = events
        self._logger = logger
        self._clock = clock or _utc_now
        self._running = False
        self._last_tick: Optional[TickResult] = None

    @property
    def running(self) -> bool:
        """True while this scheduler is inside a cycle."""
        return self._running

    @property
    def last_tick(self) -> Optional[TickResult]:
        return self._last_tick

    async def tick(self) -> TickResult:
        """
        Run one renewal cycle unless it is disabled or another run holds the lock.

        Never raises: failures are logged and returned as the tick message.
        """
        started_at = self._clock()
        try:
            result = await self._tick(started_at)
        except Exception as e:
            # Raised before the run lock was taken: no cycle ran
            message = str(e) or type(e).__name__
            if self._logger:
                self._logger.log_error("RenewalScheduler", "Scheduler tick failed", e)
            self._record_safely(ActivityKind.CHECK_ERROR, message)
            self._emit("check_error", {"error": message})
            result = TickResult(skipped=True, message=message, started_at=started_at)
        self._last_tick = result
        return result

    async def _tick(self, started_at: datetime) -> TickResult:
        policy = self._store.load_policy()
        if not policy.global_enabled:
            return self._skip(started_at, "Automatic renewal is globally disabled")

        existing = self._run_lock.read()
        if existing is not None:
            if not self._run_lock.is_stale(existing, started_at):
                return self._skip(started_at, "Renewal check already in progress, skipping")
            self._run_lock.release(force=True)
            self._record(
                ActivityKind.STALE_LOCK_RELEASED,
                "Released stale renewal lock",
                {
                    "owner_id": existing.owner_id,
                    "acquired_at": existing.acquired_at.isoformat(),
                },
            )

        if not self._run_lock.try_acquire():
            return self._skip(started_at, "Renewal check already in progress, skipping")

        self._running = True
        try:
            try:
                self._store.reload()
            except ConfigCorruptError:
                return self._skip(
                    started_at, "Configuration was reset to defaults, skipping this cycle"
                )

            policy = self._store.load_policy()
            if not policy.global_enabled:
                return self._skip(started_at, "Automatic renewal is globally disabled")

            self._record(ActivityKind.CHECK_STARTED, "Starting comprehensive renewal check")
            self._emit("check_started", {"timestamp": started_at.isoformat()})

            hosts = await self._discovery.discover()
            cycle = await self._executor.run_cycle(hosts, policy)

            self._store.record_cycle(
                attempted=len(cycle.attempted),
                succeeded=cycle.renewed,
                failed=cycle.failed,
                when=started_at,
            )

            summary = (
                f"Renewal check completed: {cycle.renewed} renewed, "
                f"{cycle.failed} failed, {cycle.skipped} skipped"
            )
            if cycle.check_errors:
                summary += f", {cycle.check_errors} check errors"
            self._record(ActivityKind.CHECK_COMPLETED, summary, cycle.to_dict())
            self._emit(
                "check_completed",
                {"results": cycle.to_dict(), "timestamp": started_at.isoformat()},
            )
            return TickResult(
                skipped=False, message=summary, started_at=started_at, result=cycle
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            if self._logger:
                self._logger.log_error("RenewalScheduler", "Renewal check failed", e)
            self._record_safely(ActivityKind.CHECK_ERROR, message)
            self._emit("check_error", {"error": message})
            return TickResult(skipped=False, message=message, started_at=started_at)
        finally:
            self._running = False
            self._run_lock.release()

    def _skip(self, started_at: datetime, message: str) -> TickResult:
        self._record(ActivityKind.CHECK_SKIPPED, message)
        self._emit("check_skipped", {"reason": message})
        self._log(LogLevel.INFO, message, {})
        return TickResult(skipped=True, message=message, started_at=started_at)

    def _record(self, kind: ActivityKind, message: str, details: Optional[dict] = None) -> None:
        self._activity.record(SYSTEM_DOMAIN, kind, message, details)

    def _record_safely(self, kind: ActivityKind, message: str) -> None:
        try:
            self._record(kind, message)
        except Exception as e:
            if self._logger:
                self._logger.log_error("RenewalScheduler", "Failed to write activity log", e)

    def _emit(self, name: str, payload: dict) -> None:
        if self._events:
            self._events.emit(name, payload)

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "RenewalScheduler", message, data)
