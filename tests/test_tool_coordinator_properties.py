"""
Property-based tests for the Tool Coordinator module.

Verifies that certificate tool operations are serialized, that a busy tool
is retried a bounded number of times, and that processing entries are
always cleaned up.
"""

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cert_autorenew.config import CoordinationConfig
from cert_autorenew.events import CallbackSink, EventBus
from cert_autorenew.exceptions import ToolBusyError
from cert_autorenew.tool_coordinator import ProcessingSet, ToolCoordinator


class FakeClock:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


class RecordingSleep:
    """Sleep replacement that records delays and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class BusyFor:
    """Busy check that reports busy for the first ``n`` calls."""

    def __init__(self, n: int) -> None:
        self.n = n
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.calls <= self.n


class TestToolBusyProperty:
    """
    **Feature: cert-autorenew, Property 5: A tool busy on every check raises ToolBusyError**
    """

    @given(retry_count=st.integers(min_value=1, max_value=8))
    @settings(max_examples=30)
    def test_always_busy_raises_after_retry_count_checks(self, retry_count: int) -> None:
        busy = BusyFor(10_000)
        sleep = RecordingSleep()
        config = CoordinationConfig(busy_retry_count=retry_count, busy_retry_delay_seconds=10)
        coordinator = ToolCoordinator(config, busy_check=busy, sleep=sleep)
        ran = []

        async def operation() -> str:
            ran.append(True)
            return "done"

        async def run() -> None:
            with pytest.raises(ToolBusyError) as exc_info:
                await coordinator.with_exclusive_access("example.com", operation)
            assert exc_info.value.code == "tool_busy"

        asyncio.run(run())

        assert busy.calls == retry_count
        assert sleep.delays == [10] * (retry_count - 1)
        assert ran == []
        assert not coordinator.in_processing("example.com")

    def test_default_config_checks_five_times(self) -> None:
        busy = BusyFor(10_000)
        coordinator = ToolCoordinator(
            CoordinationConfig(), busy_check=busy, sleep=RecordingSleep()
        )

        async def run() -> None:
            with pytest.raises(ToolBusyError):
                await coordinator.with_exclusive_access("example.com", _noop)

        asyncio.run(run())

        assert busy.calls == 5

    @given(busy_checks=st.integers(min_value=0, max_value=4))
    @settings(max_examples=20)
    def test_tool_freed_before_last_check_runs_operation(self, busy_checks: int) -> None:
        busy = BusyFor(busy_checks)
        coordinator = ToolCoordinator(
            CoordinationConfig(busy_retry_count=5), busy_check=busy, sleep=RecordingSleep()
        )

        async def operation() -> str:
            return "renewed"

        result = asyncio.run(coordinator.with_exclusive_access("example.com", operation))

        assert result == "renewed"
        assert busy.calls == busy_checks + 1

    def test_waiting_emits_tool_waiting_events(self) -> None:
        events = []
        bus = EventBus()
        bus.subscribe(CallbackSink(events.append))
        coordinator = ToolCoordinator(
            CoordinationConfig(busy_retry_count=3, busy_retry_delay_seconds=7),
            busy_check=BusyFor(2),
            events=bus,
            sleep=RecordingSleep(),
        )

        asyncio.run(coordinator.with_exclusive_access("example.com", _noop))

        assert [e.name for e in events] == ["tool_waiting", "tool_waiting"]
        assert events[0].payload == {
            "domain": "example.com",
            "attempt": 1,
            "max_attempts": 3,
            "delay_seconds": 7,
        }


class TestProcessingCleanupProperty:
    """
    **Feature: cert-autorenew, Property 6: Processing entries are removed whatever the outcome**
    """

    @given(fail=st.booleans())
    @settings(max_examples=10)
    def test_entry_removed_after_operation(self, fail: bool) -> None:
        coordinator = ToolCoordinator(CoordinationConfig(), sleep=RecordingSleep())
        seen_inside = []

        async def operation() -> None:
            seen_inside.append(coordinator.in_processing("example.com"))
            if fail:
                raise RuntimeError("tool crashed")

        async def run() -> None:
            if fail:
                with pytest.raises(RuntimeError):
                    await coordinator.with_exclusive_access("example.com", operation)
            else:
                await coordinator.with_exclusive_access("example.com", operation)

        asyncio.run(run())

        assert seen_inside == [True]
        assert not coordinator.in_processing("example.com")
        assert coordinator.processing.snapshot() == []

    def test_same_domain_waits_for_in_progress_operation(self) -> None:
        sleep = RecordingSleep()
        config = CoordinationConfig(processing_poll_seconds=2)
        coordinator = ToolCoordinator(config, sleep=sleep)
        order = []

        async def run() -> None:
            coordinator.processing.add("example.com")

            async def release_later() -> None:
                for _ in range(3):
                    await asyncio.sleep(0)
                order.append("released")
                coordinator.processing.discard("example.com")

            async def operation() -> None:
                order.append("operation")

            await asyncio.gather(
                release_later(),
                coordinator.with_exclusive_access("example.com", operation),
            )

        asyncio.run(run())

        assert order == ["released", "operation"]
        assert sleep.delays and all(d == 2 for d in sleep.delays)


class TestMutualExclusionProperty:
    """
    **Feature: cert-autorenew, Property 7: At most one tool invocation is in flight**
    """

    @given(count=st.integers(min_value=2, max_value=8))
    @settings(max_examples=20)
    def test_operations_never_overlap(self, count: int) -> None:
        coordinator = ToolCoordinator(CoordinationConfig(), sleep=RecordingSleep())
        active = 0
        peak = 0

        async def operation() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            active -= 1

        async def run() -> None:
            await asyncio.gather(*(
                coordinator.with_exclusive_access(f"d{i}.example.com", operation)
                for i in range(count)
            ))

        asyncio.run(run())

        assert peak == 1


class TestProcessingSetStaleness:
    """Stale processing entries are evicted on access."""

    @given(
        stale_after=st.floats(min_value=1.0, max_value=600.0),
        extra=st.floats(min_value=0.0, max_value=100.0),
    )
    @settings(max_examples=50)
    def test_stale_entry_is_evicted(self, stale_after: float, extra: float) -> None:
        clock = FakeClock()
        processing = ProcessingSet(stale_after_seconds=stale_after, monotonic=clock)
        processing.add("example.com")

        clock.value += stale_after + extra

        assert "example.com" not in processing
        assert processing.snapshot() == []

    def test_fresh_entry_is_kept(self) -> None:
        clock = FakeClock()
        processing = ProcessingSet(stale_after_seconds=300, monotonic=clock)
        processing.add("b.example.com")
        processing.add("a.example.com")
        clock.value += 299

        assert "a.example.com" in processing
        assert processing.snapshot() == ["a.example.com", "b.example.com"]
        assert len(processing) == 2

    def test_evict_stale_returns_evicted_domains(self) -> None:
        clock = FakeClock()
        processing = ProcessingSet(stale_after_seconds=10, monotonic=clock)
        processing.add("old.example.com")
        clock.value += 11
        processing.add("new.example.com")

        assert processing.evict_stale() == ["old.example.com"]
        assert processing.snapshot() == ["new.example.com"]


async def _noop() -> None:
    return None
