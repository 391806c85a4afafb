"""
Auto-Renewal Service: wiring and settings interface.

Builds every component from a SystemConfig and exposes the operations used
by the CLI: settings updates, per-domain toggles, manual renewals and
installs, the renewal status overview, the activity log and on-demand
checks. The periodic scheduler is armed while renewal is globally enabled.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .activity_log import ActivityLog
from .audit_logger import AuditLogger
from .cert_tool import CertbotTool, CertTool, SimulatedCertTool, ToolActivityProbe
from .config import SystemConfig
from .discovery import HostDiscovery, StaticHostDiscovery
from .domain_validator import DomainValidator
from .enums import ActivityKind, CheckFrequency, InstallMethod, LogLevel
from .events import EventBus, LoggingSink, WebhookSink
from .exceptions import ConfigCorruptError, RenewalFailedError, ToolBusyError, ValidationError
from .executor import BatchRenewalExecutor
from .models import (
    SYSTEM_DOMAIN,
    ActivityLogEntry,
    DomainRenewalState,
    GlobalPolicy,
    RenewalDetail,
    TickResult,
    ToolResult,
)
from .prober import StatusProber
from .retry_manager import RetryManager
from .run_lock import RunLock
from .scheduler import PeriodicTask, RenewalScheduler
from .state_store import ConfigStore
from .status_cache import StatusCache
from .tool_coordinator import ProcessingSet, ToolCoordinator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AutoRenewalService:
    """
    Facade over the renewal orchestrator.

    Collaborators that touch the system (tool, prober, discovery, busy
    check) can be injected; everything else is built from ``config``.
    """

    def __init__(
        self,
        config: SystemConfig,
        tool: Optional[CertTool] = None,
        discovery: Optional[HostDiscovery] = None,
        prober: Optional[StatusProber] = None,
        busy_check: Optional[Callable[[], Awaitable[bool]]] = None,
        events: Optional[EventBus] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._logger = logger
        self._clock = clock or _utc_now
        self._validator = DomainValidator()

        persistence = config.persistence
        self._activity = ActivityLog(persistence.activity_log_path, clock=self._clock)
        self._store = ConfigStore(
            persistence.state_file_path,
            persistence.hmac_secret,
            activity_log=self._activity,
            logger=logger,
            clock=self._clock,
        )
        self._run_lock = RunLock(
            persistence.lock_file_path,
            config.coordination.run_lock_stale_seconds,
            clock=self._clock,
        )

        self._events = events or EventBus(logger=logger)
        if events is None:
            if logger is not None:
                self._events.subscribe(LoggingSink(logger))
            if config.events.webhook_url:
                self._events.subscribe(
                    WebhookSink(
                        config.events,
                        retry_manager=RetryManager(config.retry, sleep=sleep),
                        simulation_mode=config.simulation_mode,
                    )
                )

        if tool is None:
            if config.simulation_mode:
                tool = SimulatedCertTool()
            else:
                tool = CertbotTool(config.tool, logger=logger)
        self._tool = tool

        if busy_check is None and not config.simulation_mode:
            busy_check = ToolActivityProbe(
                config.tool.lock_files, config.tool.process_names
            ).is_busy

        self._discovery = discovery or StaticHostDiscovery(config.domains, validator=self._validator)
        self._prober = prober or StatusProber(config.probe, logger=logger, clock=self._clock)
        self._cache = StatusCache(self._prober, config.probe.cache_ttl_seconds, logger=logger)
        self._coordinator = ToolCoordinator(
            config.coordination,
            busy_check=busy_check,
            processing=ProcessingSet(config.coordination.processing_stale_seconds),
            events=self._events,
            logger=logger,
            sleep=sleep,
        )
        self._retry_manager = RetryManager(config.retry, sleep=sleep)
        self._executor = BatchRenewalExecutor(
            store=self._store,
            cache=self._cache,
            coordinator=self._coordinator,
            tool=self._tool,
            activity_log=self._activity,
            config=config.coordination,
            retry_manager=self._retry_manager,
            events=self._events,
            logger=logger,
            clock=self._clock,
            sleep=sleep,
        )
        self._scheduler = RenewalScheduler(
            store=self._store,
            run_lock=self._run_lock,
            executor=self._executor,
            discovery=self._discovery,
            activity_log=self._activity,
            events=self._events,
            logger=logger,
            clock=self._clock,
        )
        self._periodic = PeriodicTask(
            self.run_check_now, logger=logger, name="renewal-check"
        )
        # Set by initialize(): only a scheduling instance owns the timer
        self._scheduling = False

    async def __aenter__(self) -> "AutoRenewalService":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    @property
    def store(self) -> ConfigStore:
        return self._store

    @property
    def cache(self) -> StatusCache:
        return self._cache

    @property
    def coordinator(self) -> ToolCoordinator:
        return self._coordinator

    @property
    def scheduler(self) -> RenewalScheduler:
        return self._scheduler

    @property
    def periodic_task(self) -> PeriodicTask:
        return self._periodic

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def activity_log(self) -> ActivityLog:
        return self._activity

    async def initialize(self) -> GlobalPolicy:
        """Load (or create) the policy and arm the scheduler when enabled."""
        try:
            self._store.reload()
        except ConfigCorruptError as e:
            self._log(LogLevel.WARN, "Started with default policy after corruption", {"reason": e.code})
        policy = self._store.load_policy()
        self._scheduling = True
        await self._apply_schedule(policy)
        self._log(LogLevel.INFO, "AutoRenewal service initialized", {
            "global_enabled": policy.global_enabled,
            "check_frequency": policy.check_frequency.value,
        })
        return policy

    async def shutdown(self) -> None:
        """Stop the scheduler and wait for outstanding event deliveries."""
        self._scheduling = False
        await self._periodic.stop()
        await self._events.drain()

    async def update_settings(
        self,
        global_enabled: Optional[bool] = None,
        renewal_window_days: Optional[int] = None,
        check_frequency: Optional[CheckFrequency] = None,
        max_concurrent_renewals: Optional[int] = None,
        retry_failed_after_hours: Optional[int] = None,
    ) -> GlobalPolicy:
        """
        Validate and persist new policy values; omitted values are kept.

        An initialized service re-arms its own timer at once. Other
        processes sharing the data directory pick the change up after
        their next check.

        Raises:
            ValidationError: If a value is out of range
        """
        policy = self._store.load_policy()
        changes: dict[str, Any] = {}
        if global_enabled is not None:
            policy.global_enabled = global_enabled
            changes["global_enabled"] = global_enabled
        if renewal_window_days is not None:
            policy.renewal_window_days = renewal_window_days
            changes["renewal_window_days"] = renewal_window_days
        if check_frequency is not None:
            policy.check_frequency = check_frequency
            changes["check_frequency"] = check_frequency.value
        if max_concurrent_renewals is not None:
            policy.max_concurrent_renewals = max_concurrent_renewals
            changes["max_concurrent_renewals"] = max_concurrent_renewals
        if retry_failed_after_hours is not None:
            policy.retry_failed_after_hours = retry_failed_after_hours
            changes["retry_failed_after_hours"] = retry_failed_after_hours

        self._store.save_policy(policy)
        self._activity.record(
            SYSTEM_DOMAIN, ActivityKind.SETTINGS_UPDATED, "Autorenewal settings updated", changes
        )
        if self._scheduling:
            await self._apply_schedule(policy)
        return policy

    def set_domain_enabled(self, domain: str, enabled: bool) -> DomainRenewalState:
        """
        Turn automatic renewal on or off for one domain.

        Raises:
            ValidationError: If the domain is not a valid host name
        """
        domain = self._validator.require_valid(domain)
        state = self._store.load_domain_state(domain)
        state.enabled = enabled
        self._store.save_domain_state(state)
        self._activity.record(
            domain,
            ActivityKind.DOMAIN_TOGGLED,
            f"Autorenewal {'enabled' if enabled else 'disabled'}",
            {"enabled": enabled},
        )
        return state

    async def renew_domain(self, domain: str) -> RenewalDetail:
        """
        Renew one domain now, regardless of its expiry.

        Raises:
            ValidationError: If the domain is not a valid host name
        """
        domain = self._validator.require_valid(domain)
        if self._coordinator.in_processing(domain):
            return RenewalDetail(
                domain=domain,
                action="renew",
                success=False,
                error="Renewal already in progress for this domain",
            )
        return await self._executor.renew_domain(domain)

    async def install_certificate(
        self,
        domain: str,
        email: str,
        method: InstallMethod = InstallMethod.HTTP_CHALLENGE,
    ) -> ToolResult:
        """
        Obtain a first certificate for ``domain``.

        The method of the first successful install is recorded and used by
        all later renewals.

        Raises:
            ValidationError: If the domain or e-mail address is invalid
        """
        domain = self._validator.require_valid(domain)
        if not self._validator.is_valid_email(email):
            raise ValidationError(
                code="invalid_email",
                message="Invalid e-mail address",
                details={"email": email},
            )

        async def _install() -> ToolResult:
            retry = await self._retry_manager.execute_with_retry(
                lambda: self._tool.install(domain, email, method)
            )
            if retry.success:
                assert retry.result is not None
                return retry.result
            assert retry.last_error is not None
            raise retry.last_error

        try:
            result = await self._coordinator.with_exclusive_access(domain, _install)
        except (RenewalFailedError, ToolBusyError) as e:
            result = ToolResult(success=False, method=method, message=e.message)
        finally:
            self._cache.invalidate(domain)

        if result.success:
            state = self._store.load_domain_state(domain)
            if state.install_method is None:
                state.install_method = method
            state.record_success(self._clock())
            self._store.save_domain_state(state)
            self._activity.record(
                domain,
                ActivityKind.INSTALL_SUCCESS,
                result.message,
                {"method": method.value, "certificate_path": result.certificate_path},
            )
        else:
            self._activity.record(
                domain, ActivityKind.INSTALL_FAILED, result.message, {"method": method.value}
            )
            self._log(LogLevel.ERROR, f"Install failed for {domain}", {
                "domain": domain, "method": method.value, "error": result.message,
            })
        return result

    async def get_renewal_status(self) -> dict:
        """Policy, statistics, per-domain rows and system status."""
        policy = self._store.load_policy()
        states = {s.domain: s for s in self._store.list_domain_states()}
        hosts = await self._discovery.discover()
        paths = {h.domain: h.certificate_path for h in hosts}
        domains = list(paths)
        domains += [d for d in states if d not in paths]

        async def _row(domain: str) -> dict:
            state = states.get(domain) or DomainRenewalState(domain=domain)
            try:
                ssl_status = await self._cache.get_status(domain, paths.get(domain))
            except Exception as e:
                self._log(LogLevel.WARN, f"Status lookup failed for {domain}: {e}", {"domain": domain})
                ssl_status = None
            has_cert = bool(ssl_status and ssl_status.has_certificate)
            days = ssl_status.days_until_expiry if has_cert else None
            return {
                "domain": domain,
                "enabled": state.enabled,
                "install_method": state.effective_install_method.value,
                "has_ssl": has_cert,
                "days_until_expiry": days,
                "is_expired": bool(ssl_status and ssl_status.is_expired),
                "is_expiring_soon": bool(ssl_status and ssl_status.is_expiring_soon),
                "issuer": ssl_status.issuer if ssl_status else None,
                "last_renewal": _iso(state.last_renewal_attempt),
                "last_success": _iso(state.last_success),
                "last_failure": _iso(state.last_failure),
                "last_error": state.last_error,
                "status": state.status.value,
                "renewal_needed": has_cert and (days or 0) <= policy.renewal_window_days,
                "in_progress": self._coordinator.in_processing(domain),
            }

        rows = await asyncio.gather(*(_row(d) for d in domains))
        stats = policy.statistics
        last_tick = self._scheduler.last_tick
        return {
            "global_config": {
                "global_enabled": policy.global_enabled,
                "renewal_window_days": policy.renewal_window_days,
                "check_frequency": policy.check_frequency.value,
                "max_concurrent_renewals": policy.max_concurrent_renewals,
                "retry_failed_after_hours": policy.retry_failed_after_hours,
                "last_global_check": _iso(policy.last_global_check),
            },
            "statistics": {
                "total_checks": stats.total_checks,
                "renewals_attempted": stats.renewals_attempted,
                "renewals_succeeded": stats.renewals_succeeded,
                "renewals_failed": stats.renewals_failed,
                "last_check": _iso(stats.last_check),
                "last_renewal": _iso(stats.last_renewal),
            },
            "domains": list(rows),
            "system_status": {
                "is_running": self._scheduler.running,
                "scheduler_armed": self._periodic.is_running(),
                "last_check": _iso(last_tick.started_at) if last_tick else None,
                "active_renewals": self._coordinator.processing.snapshot(),
            },
        }

    def get_activity(self, limit: int = ActivityLog.DEFAULT_LIMIT) -> list[ActivityLogEntry]:
        return self._activity.recent(limit)

    async def run_check_now(self) -> TickResult:
        """
        Perform one scheduler tick.

        Also runs as the periodic callback. Afterwards an initialized
        service re-reads the policy and follows any frequency or enabled
        change made by another process.
        """
        result = await self._scheduler.tick()
        if self._scheduling:
            await self._refresh_schedule()
        return result

    async def _refresh_schedule(self) -> None:
        try:
            self._store.reload()
        except ConfigCorruptError as e:
            self._log(LogLevel.WARN, "Policy reset to defaults after corruption", {"reason": e.code})
        await self._apply_schedule(self._store.load_policy())

    async def _apply_schedule(self, policy: GlobalPolicy) -> None:
        interval = policy.check_frequency.interval_seconds
        if policy.global_enabled:
            if self._periodic.is_running() and self._periodic.interval == interval:
                return
            self._periodic.start(interval)
            self._activity.record(
                SYSTEM_DOMAIN,
                ActivityKind.SCHEDULER_SETUP,
                f"Automatic renewal scheduler configured for {policy.check_frequency.value} checks",
                {"interval_seconds": interval},
            )
        elif self._periodic.is_running():
            await self._periodic.stop()
            self._activity.record(
                SYSTEM_DOMAIN,
                ActivityKind.SCHEDULER_CLEARED,
                "Automatic renewal scheduler stopped",
            )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "AutoRenewalService", message, data)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
