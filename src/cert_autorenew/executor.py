"""
Batch Renewal Executor.

Runs one renewal cycle over the discovered hosts:
1. Skips disabled and in-progress domains before probing
2. Probes the rest through the status cache and evaluates eligibility
3. Orders eligible domains by urgency (fewest days left first)
4. Renews them in chunks of ``max_concurrent_renewals`` through the tool
   coordinator, pausing between chunks

A failure of one domain never aborts the chunk or the cycle. Every outcome
is persisted as soon as it is known.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .activity_log import ActivityLog
from .audit_logger import AuditLogger
from .cert_tool import CertTool
from .config import CoordinationConfig
from .eligibility import EligibilityEvaluator
from .enums import ActivityKind, LogLevel, RenewalStatus
from .events import EventBus
from .exceptions import RenewalFailedError, ToolBusyError
from .models import (
    SYSTEM_DOMAIN,
    CycleResult,
    DiscoveredHost,
    DomainRenewalState,
    EligibilityDecision,
    GlobalPolicy,
    RenewalDetail,
)
from .retry_manager import RetryManager
from .state_store import ConfigStore
from .status_cache import StatusCache
from .tool_coordinator import ToolCoordinator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def chunked(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchRenewalExecutor:
    """Evaluates hosts and renews the eligible ones with bounded concurrency."""

    def __init__(
        self,
        store: ConfigStore,
        cache: StatusCache,
        coordinator: ToolCoordinator,
        tool: CertTool,
        activity_log: ActivityLog,
        config: CoordinationConfig,
        retry_manager: Optional[RetryManager] = None,
        events: Optional[EventBus] = None,
        logger: Optional[AuditLogger] = None,
        evaluator: Optional[EligibilityEvaluator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._cache = cache
        self._coordinator = coordinator
        self._tool = tool
        self._activity = activity_log
        self._config = config
        self._retry_manager = retry_manager
        self._events = events
        self._logger = logger
        self._evaluator = evaluator or EligibilityEvaluator()
        self._clock = clock or _utc_now
        self._sleep = sleep

    async def run_cycle(
        self, hosts: list[DiscoveredHost], policy: GlobalPolicy
    ) -> CycleResult:
        """
        Evaluate every host and renew the eligible ones.

        Args:
            hosts: Hosts reported by discovery
            policy: Policy in effect for this cycle

        Returns:
            CycleResult with counts and per-domain details
        """
        result = CycleResult()
        eligible: list[EligibilityDecision] = []

        for host in hosts:
            decision = await self._evaluate_host(host, policy, result)
            if decision is not None:
                eligible.append(decision)

        eligible.sort(key=lambda d: (d.days_until_expiry or 0, d.domain))
        result.eligible = len(eligible)

        analysis = (
            f"Found {result.eligible} domains eligible for renewal "
            f"out of {result.checked} checked domains"
        )
        self._activity.record(SYSTEM_DOMAIN, ActivityKind.CHECK_ANALYSIS, analysis)
        self._log_info(analysis, {"eligible": [d.domain for d in eligible]})
        self._emit(
            "check_analysis",
            {
                "eligible": result.eligible,
                "checked": result.checked,
                "skipped": result.skipped,
            },
        )

        chunks = chunked(eligible, policy.max_concurrent_renewals)
        for index, chunk in enumerate(chunks):
            outcomes = await asyncio.gather(
                *(self._renew_in_cycle(d.domain, result) for d in chunk),
                return_exceptions=True,
            )
            for decision, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    detail = RenewalDetail(
                        domain=decision.domain,
                        action="renew",
                        success=False,
                        error=str(outcome),
                    )
                else:
                    detail = outcome
                result.details.append(detail)
                if detail.success:
                    result.renewed += 1
                else:
                    result.failed += 1

            if index < len(chunks) - 1:
                await self._sleep(self._config.chunk_pause_seconds)

        return result

    async def renew_domain(self, domain: str) -> RenewalDetail:
        """
        Renew one domain through the coordinator, ignoring the expiry window.

        Never raises; failures are recorded and returned in the detail.
        """
        try:
            return await self._coordinator.with_exclusive_access(
                domain, lambda: self._perform_renewal(domain)
            )
        except ToolBusyError as e:
            self._update_state(
                domain,
                lambda s: s.record_failure(self._clock(), e.message, RenewalStatus.ERROR),
            )
            self._activity.record(domain, ActivityKind.TOOL_BUSY, e.message, e.details)
            self._log_error(f"Certificate tool busy, renewal of {domain} abandoned", {"domain": domain})
            self._emit("domain_failed", {"domain": domain, "error": e.message})
            return RenewalDetail(domain=domain, action="renew", success=False, error=e.message)
        except Exception as e:
            message = str(e) or type(e).__name__
            self._update_state(
                domain,
                lambda s: s.record_failure(self._clock(), message, RenewalStatus.ERROR),
            )
            self._activity.record(domain, ActivityKind.RENEWAL_ERROR, message)
            if self._logger:
                self._logger.log_error(
                    "BatchRenewalExecutor", f"Error renewing {domain}", e, {"domain": domain}
                )
            self._emit("domain_failed", {"domain": domain, "error": message})
            return RenewalDetail(domain=domain, action="renew", success=False, error=message)

    async def _evaluate_host(
        self, host: DiscoveredHost, policy: GlobalPolicy, result: CycleResult
    ) -> Optional[EligibilityDecision]:
        domain = host.domain
        try:
            state = self._store.load_domain_state(domain)
            rejected = self._evaluator.pre_check(
                state, self._coordinator.in_processing(domain)
            )
            if rejected is not None:
                self._record_skip(rejected, result)
                return None

            status = await self._cache.get_status(domain, host.certificate_path)
            result.checked += 1

            decision = self._evaluator.evaluate(
                state,
                policy,
                status,
                self._coordinator.in_processing(domain),
                self._clock(),
            )
        except Exception as e:
            result.check_errors += 1
            result.details.append(
                RenewalDetail(domain=domain, action="check", success=False, error=str(e))
            )
            if self._logger:
                self._logger.log_error(
                    "BatchRenewalExecutor", f"Error checking {domain}", e, {"domain": domain}
                )
            return None

        if not decision.eligible:
            self._record_skip(decision, result)
            return None
        return decision

    async def _renew_in_cycle(self, domain: str, result: CycleResult) -> RenewalDetail:
        result.attempted.append(domain)
        return await self.renew_domain(domain)

    async def _perform_renewal(self, domain: str) -> RenewalDetail:
        state = self._update_state(
            domain, lambda s: setattr(s, "last_renewal_attempt", self._clock())
        )
        method = state.effective_install_method
        self._activity.record(
            domain,
            ActivityKind.RENEWAL_STARTED,
            "Starting SSL certificate renewal",
            {"method": method.value},
        )
        self._emit("domain_started", {"domain": domain, "method": method.value})

        try:
            if self._retry_manager is not None:
                retry = await self._retry_manager.execute_with_retry(
                    lambda: self._tool.renew(domain, method)
                )
                tool_result, error, attempts = retry.result, retry.last_error, retry.attempts
            else:
                attempts = 1
                try:
                    tool_result, error = await self._tool.renew(domain, method), None
                except RenewalFailedError as e:
                    tool_result, error = None, e
        finally:
            # The tool may have changed the certificate whatever the outcome
            self._cache.invalidate(domain)

        if tool_result is not None and tool_result.success:
            self._update_state(domain, lambda s: s.record_success(self._clock()))
            self._activity.record(
                domain,
                ActivityKind.RENEWAL_SUCCESS,
                "SSL certificate renewed successfully",
                {"attempts": attempts},
            )
            self._emit("domain_success", {"domain": domain, "message": tool_result.message})
            return RenewalDetail(
                domain=domain, action="renew", success=True, message=tool_result.message
            )

        if tool_result is not None:
            message = tool_result.message or "Unknown error"
        elif isinstance(error, RenewalFailedError):
            message = error.message
        else:
            assert error is not None
            raise error

        self._update_state(
            domain,
            lambda s: s.record_failure(self._clock(), message, RenewalStatus.FAILED),
        )
        self._activity.record(
            domain, ActivityKind.RENEWAL_FAILED, message, {"attempts": attempts}
        )
        self._log_error(f"Renewal failed for {domain}: {message}", {"domain": domain})
        self._emit("domain_failed", {"domain": domain, "error": message})
        return RenewalDetail(domain=domain, action="renew", success=False, error=message)

    def _update_state(
        self, domain: str, change: Callable[[DomainRenewalState], object]
    ) -> DomainRenewalState:
        # Re-read so that settings changed mid-renewal are not overwritten
        state = self._store.load_domain_state(domain)
        change(state)
        self._store.save_domain_state(state)
        return state

    def _record_skip(self, decision: EligibilityDecision, result: CycleResult) -> None:
        result.skipped += 1
        self._activity.record(
            decision.domain, ActivityKind.RENEWAL_SKIPPED, decision.reason
        )

    def _emit(self, name: str, payload: dict) -> None:
        if self._events:
            self._events.emit(name, payload)

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "BatchRenewalExecutor", message, data)

    def _log_error(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.ERROR, "BatchRenewalExecutor", message, data)
