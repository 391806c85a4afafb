"""
Property-based tests for the Batch Renewal Executor module.

Covers bounded concurrency, urgency ordering, isolation of per-domain
failures, the busy-tool scenario and cache invalidation after renewals.
"""

import asyncio
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from cert_autorenew.activity_log import ActivityLog
from cert_autorenew.cert_tool import SimulatedCertTool
from cert_autorenew.config import CoordinationConfig
from cert_autorenew.enums import ActivityKind, InstallMethod, ProbeSource, RenewalStatus
from cert_autorenew.events import CallbackSink, EventBus
from cert_autorenew.exceptions import RenewalFailedError
from cert_autorenew.executor import BatchRenewalExecutor, chunked
from cert_autorenew.models import DiscoveredHost, DomainRenewalState, GlobalPolicy, SSLStatus, ToolResult
from cert_autorenew.state_store import ConfigStore
from cert_autorenew.status_cache import StatusCache
from cert_autorenew.tool_coordinator import ToolCoordinator


NOW = datetime(2026, 5, 1, 3, 0, tzinfo=timezone.utc)


class FixedProber:
    """Prober stub reporting a fixed number of days left per domain."""

    def __init__(self, days: dict[str, Optional[int]]) -> None:
        self.days = days
        self.calls: list[str] = []

    async def probe(self, domain: str, certificate_path: Optional[str] = None) -> Optional[SSLStatus]:
        self.calls.append(domain)
        days = self.days.get(domain)
        if days is None:
            return None
        return SSLStatus.from_expiry(
            domain=domain,
            expiry=NOW + timedelta(days=days),
            issuer="Test CA",
            source=ProbeSource.FILE,
            now=NOW,
        )


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class BusyFor:
    def __init__(self, n: int) -> None:
        self.n = n
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.calls <= self.n


class ConcurrencyTrackingTool(SimulatedCertTool):
    """Records how many domains were mid-operation during each tool call."""

    def __init__(self, coordinator_ref: list, **kwargs) -> None:
        super().__init__(**kwargs)
        self._coordinator_ref = coordinator_ref
        self.peak = 0

    async def renew(self, domain: str, method: InstallMethod) -> ToolResult:
        coordinator = self._coordinator_ref[0]
        self.peak = max(self.peak, len(coordinator.processing))
        for _ in range(3):
            await asyncio.sleep(0)
        return await super().renew(domain, method)


class RaisingTool(SimulatedCertTool):
    def __init__(self, raise_for: str) -> None:
        super().__init__()
        self.raise_for = raise_for

    async def renew(self, domain: str, method: InstallMethod) -> ToolResult:
        if domain == self.raise_for:
            self.calls.append(("renew", domain, method))
            raise RuntimeError("unexpected tool crash")
        return await super().renew(domain, method)


class Harness:
    """Executor wired to a temporary data directory."""

    def __init__(
        self,
        tmpdir: str,
        days: dict[str, Optional[int]],
        tool=None,
        busy_check=None,
        busy_retry_count: int = 5,
    ) -> None:
        data_dir = Path(tmpdir)
        self.activity = ActivityLog(data_dir / "autorenewal.log", clock=lambda: NOW)
        self.store = ConfigStore(
            data_dir / "autorenewal.json", "test-secret", activity_log=self.activity,
            clock=lambda: NOW,
        )
        self.prober = FixedProber(days)
        self.cache = StatusCache(self.prober, ttl_seconds=300)
        self.coordinator_sleep = RecordingSleep()
        self.config = CoordinationConfig(
            busy_retry_count=busy_retry_count, chunk_pause_seconds=5
        )
        self.coordinator = ToolCoordinator(
            self.config, busy_check=busy_check, sleep=self.coordinator_sleep
        )
        self.tool = tool or SimulatedCertTool()
        self.events: list = []
        bus = EventBus()
        bus.subscribe(CallbackSink(self.events.append))
        self.sleep = RecordingSleep()
        self.executor = BatchRenewalExecutor(
            store=self.store,
            cache=self.cache,
            coordinator=self.coordinator,
            tool=self.tool,
            activity_log=self.activity,
            config=self.config,
            events=bus,
            clock=lambda: NOW,
            sleep=self.sleep,
        )
        for domain in days:
            self.store.save_domain_state(DomainRenewalState(domain=domain, enabled=True))

    def hosts(self) -> list[DiscoveredHost]:
        return [DiscoveredHost(domain=d) for d in self.prober.days]

    def activity_kinds(self, domain: str) -> list[str]:
        return [e.event_kind for e in reversed(self.activity.recent(1000)) if e.domain == domain]


class TestUrgencyScenario:
    """
    **Feature: cert-autorenew, Property 8: Eligible domains are renewed most urgent first**
    """

    def test_window_30_max_2_renews_a_then_b_in_one_chunk(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, {"c.example.com": 60, "b.example.com": 10, "a.example.com": 5})
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=2)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.checked == 3
            assert result.eligible == 2
            assert result.renewed == 2
            assert result.failed == 0
            assert result.skipped == 1
            assert result.attempted == ["a.example.com", "b.example.com"]
            assert [c[1] for c in h.tool.calls] == ["a.example.com", "b.example.com"]
            # A single chunk: no pause between chunks
            assert h.sleep.delays == []
            assert h.activity_kinds("c.example.com") == [ActivityKind.RENEWAL_SKIPPED.value]

    @given(days=st.lists(st.integers(min_value=-5, max_value=30), min_size=1, max_size=8))
    @settings(max_examples=30, deadline=None)
    def test_attempt_order_is_by_days_left(self, days: list[int]) -> None:
        domains = {f"d{i}.example.com": d for i, d in enumerate(days)}
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, domains)
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=3)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            expected = sorted(domains, key=lambda d: (domains[d], d))
            assert result.attempted == expected

    def test_analysis_is_recorded_and_emitted(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, {"a.example.com": 5, "b.example.com": 90})
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=2)

            asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            analysis = [
                e for e in h.activity.recent(100)
                if e.event_kind == ActivityKind.CHECK_ANALYSIS.value
            ]
            assert analysis[0].message == (
                "Found 1 domains eligible for renewal out of 2 checked domains"
            )
            emitted = [e for e in h.events if e.name == "check_analysis"]
            assert emitted[0].payload == {"eligible": 1, "checked": 2, "skipped": 1}


class TestConcurrencyCeilingProperty:
    """
    **Feature: cert-autorenew, Property 9: In-flight renewals never exceed max_concurrent_renewals**
    """

    @given(
        count=st.integers(min_value=1, max_value=9),
        max_concurrent=st.integers(min_value=1, max_value=4),
    )
    @settings(max_examples=30, deadline=None)
    def test_in_flight_bounded(self, count: int, max_concurrent: int) -> None:
        domains = {f"d{i}.example.com": i for i in range(count)}
        ref: list = []
        with tempfile.TemporaryDirectory() as tmpdir:
            tool = ConcurrencyTrackingTool(ref)
            h = Harness(tmpdir, domains, tool=tool)
            ref.append(h.coordinator)
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=max_concurrent)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.renewed == count
            assert 1 <= tool.peak <= max_concurrent
            expected_chunks = len(chunked(list(domains), max_concurrent))
            assert h.sleep.delays == [5] * (expected_chunks - 1)

    def test_chunked_splits_in_order(self) -> None:
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
        assert chunked([], 3) == []


class TestFailureIsolationProperty:
    """
    **Feature: cert-autorenew, Property 10: One domain's failure never affects the others**
    """

    def test_tool_failure_is_recorded_and_others_renew(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            tool = SimulatedCertTool(fail_domains={"b.example.com"})
            h = Harness(
                tmpdir,
                {"a.example.com": 1, "b.example.com": 2, "c.example.com": 3},
                tool=tool,
            )
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=3)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.renewed == 2
            assert result.failed == 1
            failed = h.store.load_domain_state("b.example.com")
            assert failed.status == RenewalStatus.FAILED
            assert failed.last_failure == NOW
            assert failed.last_error == "Simulated renew failure for b.example.com"
            assert ActivityKind.RENEWAL_FAILED.value in h.activity_kinds("b.example.com")
            for ok in ("a.example.com", "c.example.com"):
                state = h.store.load_domain_state(ok)
                assert state.status == RenewalStatus.ACTIVE
                assert state.last_success == NOW
                assert state.last_renewal_attempt == NOW

    def test_unexpected_exception_is_contained(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(
                tmpdir,
                {"a.example.com": 1, "b.example.com": 2},
                tool=RaisingTool("a.example.com"),
            )
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=2)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.renewed == 1
            assert result.failed == 1
            state = h.store.load_domain_state("a.example.com")
            assert state.status == RenewalStatus.ERROR
            assert state.last_error == "unexpected tool crash"
            assert ActivityKind.RENEWAL_ERROR.value in h.activity_kinds("a.example.com")
            assert h.store.load_domain_state("b.example.com").status == RenewalStatus.ACTIVE

    def test_success_clears_previous_failure(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, {"a.example.com": 3})
            state = h.store.load_domain_state("a.example.com")
            state.record_failure(NOW - timedelta(days=3), "old failure")
            h.store.save_domain_state(state)

            detail = asyncio.run(h.executor.renew_domain("a.example.com"))

            assert detail.success
            state = h.store.load_domain_state("a.example.com")
            assert state.last_failure is None
            assert state.last_error is None

    def test_transient_tool_error_without_retry_is_a_failure(self) -> None:
        class TimeoutTool(SimulatedCertTool):
            async def renew(self, domain: str, method: InstallMethod) -> ToolResult:
                raise RenewalFailedError(
                    code="tool_timeout", message="certbot timed out", transient=True
                )

        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, {"a.example.com": 3}, tool=TimeoutTool())

            detail = asyncio.run(h.executor.renew_domain("a.example.com"))

            assert not detail.success
            assert detail.error == "certbot timed out"
            assert h.store.load_domain_state("a.example.com").status == RenewalStatus.FAILED

    def test_disabled_and_missing_certificates_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            h = Harness(tmpdir, {"a.example.com": 3, "b.example.com": None})
            h.store.save_domain_state(DomainRenewalState(domain="a.example.com", enabled=False))
            policy = GlobalPolicy(renewal_window_days=30)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.skipped == 2
            assert result.checked == 1  # disabled domains are not probed
            assert h.prober.calls == ["b.example.com"]
            assert h.tool.calls == []


class TestToolBusyScenario:
    """
    **Feature: cert-autorenew, Property 11: A busy tool fails only the affected domain**
    """

    def test_busy_for_five_checks_fails_first_domain_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            busy = BusyFor(5)
            h = Harness(
                tmpdir,
                {"a.example.com": 1, "b.example.com": 2},
                busy_check=busy,
            )
            policy = GlobalPolicy(renewal_window_days=30, max_concurrent_renewals=1)

            result = asyncio.run(h.executor.run_cycle(h.hosts(), policy))

            assert result.failed == 1
            assert result.renewed == 1
            assert busy.calls == 6
            state = h.store.load_domain_state("a.example.com")
            assert state.last_failure == NOW
            assert state.status == RenewalStatus.ERROR
            assert ActivityKind.TOOL_BUSY.value in h.activity_kinds("a.example.com")
            assert [c[1] for c in h.tool.calls] == ["b.example.com"]
            assert h.store.load_domain_state("b.example.com").status == RenewalStatus.ACTIVE
            assert not h.coordinator.in_processing("a.example.com")


class TestCacheInvalidationAfterRenewal:
    """
    **Feature: cert-autorenew, Property 12: Renewing a domain invalidates its cached status**
    """

    @given(fail=st.booleans())
    @settings(max_examples=10, deadline=None)
    def test_next_read_reprobes(self, fail: bool) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            tool = SimulatedCertTool(fail_domains={"x.example.com"} if fail else None)
            h = Harness(tmpdir, {"x.example.com": 3}, tool=tool)

            async def run() -> None:
                await h.cache.get_status("x.example.com")
                await h.executor.renew_domain("x.example.com")
                assert h.cache.peek("x.example.com") is None
                await h.cache.get_status("x.example.com")

            asyncio.run(run())

            assert h.prober.calls == ["x.example.com", "x.example.com"]
