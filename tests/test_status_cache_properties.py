"""
Property-based tests for the Status Cache module.

Uses Hypothesis for property-based testing to verify the caching contract:
stable reads within the TTL, re-probing after expiry or invalidation.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cert_autorenew.enums import ProbeSource
from cert_autorenew.models import SSLStatus
from cert_autorenew.status_cache import StatusCache


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class CountingProber:
    """Prober stub returning a fresh SSLStatus object on every probe."""

    def __init__(self, days: Optional[int] = 42, delay: float = 0.0) -> None:
        self.days = days
        self.delay = delay
        self.calls: list[str] = []

    async def probe(self, domain: str, certificate_path: Optional[str] = None) -> Optional[SSLStatus]:
        self.calls.append(domain)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.days is None:
            return None
        return SSLStatus.from_expiry(
            domain=domain,
            expiry=NOW + timedelta(days=self.days),
            issuer="Test CA",
            source=ProbeSource.LIVE,
            now=NOW,
        )


class FailingProber:
    def __init__(self) -> None:
        self.calls = 0

    async def probe(self, domain: str, certificate_path: Optional[str] = None) -> Optional[SSLStatus]:
        self.calls += 1
        raise RuntimeError("probe exploded")


@st.composite
def domain_strategy(draw) -> str:
    """Generate simple valid domain names."""
    label = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
        min_size=1,
        max_size=20,
    ))
    tld = draw(st.sampled_from(["de", "com", "net", "org", "eu"]))
    return f"{label}.{tld}"


class TestCacheStabilityProperty:
    """
    Property-based tests for cache stability.

    **Feature: cert-autorenew, Property 1: Reads within the TTL are identical**
    """

    @given(
        domain=domain_strategy(),
        ttl=st.floats(min_value=1.0, max_value=3600.0),
        elapsed_fraction=st.floats(min_value=0.0, max_value=0.99),
    )
    @settings(max_examples=100)
    def test_reads_within_ttl_return_identical_status(
        self, domain: str, ttl: float, elapsed_fraction: float
    ) -> None:
        """
        Property 1: Two get_status calls within the TTL return the identical
        SSLStatus object and probe only once.
        """
        clock = FakeClock()
        prober = CountingProber()
        cache = StatusCache(prober, ttl_seconds=ttl, monotonic=clock)

        async def run() -> tuple[SSLStatus, SSLStatus]:
            first = await cache.get_status(domain)
            clock.value += ttl * elapsed_fraction
            second = await cache.get_status(domain)
            return first, second

        first, second = asyncio.run(run())

        assert first is second
        assert prober.calls == [domain]

    @given(
        domain=domain_strategy(),
        ttl=st.floats(min_value=1.0, max_value=3600.0),
    )
    @settings(max_examples=50)
    def test_expired_entry_is_probed_again(self, domain: str, ttl: float) -> None:
        clock = FakeClock()
        prober = CountingProber()
        cache = StatusCache(prober, ttl_seconds=ttl, monotonic=clock)

        async def run() -> tuple[SSLStatus, SSLStatus]:
            first = await cache.get_status(domain)
            clock.value += ttl
            second = await cache.get_status(domain)
            return first, second

        first, second = asyncio.run(run())

        assert first is not second
        assert prober.calls == [domain, domain]

    def test_domains_are_cached_independently(self) -> None:
        prober = CountingProber()
        cache = StatusCache(prober, ttl_seconds=300, monotonic=FakeClock())

        async def run() -> None:
            await cache.get_status("a.example.com")
            await cache.get_status("b.example.com")
            await cache.get_status("a.example.com")

        asyncio.run(run())

        assert prober.calls == ["a.example.com", "b.example.com"]
        assert len(cache) == 2


class TestCacheInvalidationProperty:
    """
    Tests for explicit invalidation.

    **Feature: cert-autorenew, Property 2: Invalidation forces a fresh probe**
    """

    @given(domain=domain_strategy())
    @settings(max_examples=50)
    def test_invalidate_forces_reprobe(self, domain: str) -> None:
        prober = CountingProber()
        cache = StatusCache(prober, ttl_seconds=300, monotonic=FakeClock())

        async def run() -> tuple[SSLStatus, SSLStatus]:
            first = await cache.get_status(domain)
            cache.invalidate(domain)
            second = await cache.get_status(domain)
            return first, second

        first, second = asyncio.run(run())

        assert first is not second
        assert len(prober.calls) == 2

    def test_invalidate_unknown_domain_is_noop(self) -> None:
        cache = StatusCache(CountingProber(), ttl_seconds=300)
        cache.invalidate("missing.example.com")
        assert cache.peek("missing.example.com") is None

    def test_clear_drops_all_entries(self) -> None:
        prober = CountingProber()
        cache = StatusCache(prober, ttl_seconds=300, monotonic=FakeClock())

        async def run() -> None:
            await cache.get_status("a.example.com")
            await cache.get_status("b.example.com")
            cache.clear()
            await cache.get_status("a.example.com")

        asyncio.run(run())

        assert prober.calls == ["a.example.com", "b.example.com", "a.example.com"]


class TestCacheMissBehavior:
    """Tests for absent certificates, failures and concurrent misses."""

    def test_absent_certificate_is_cached(self) -> None:
        prober = CountingProber(days=None)
        cache = StatusCache(prober, ttl_seconds=300, monotonic=FakeClock())

        async def run() -> tuple[SSLStatus, SSLStatus]:
            return (
                await cache.get_status("nocert.example.com"),
                await cache.get_status("nocert.example.com"),
            )

        first, second = asyncio.run(run())

        assert first.has_certificate is False
        assert first.domain == "nocert.example.com"
        assert first is second
        assert len(prober.calls) == 1

    def test_concurrent_misses_share_one_probe(self) -> None:
        prober = CountingProber(delay=0.01)
        cache = StatusCache(prober, ttl_seconds=300)

        async def run() -> list[SSLStatus]:
            return await asyncio.gather(
                *(cache.get_status("shared.example.com") for _ in range(5))
            )

        results = asyncio.run(run())

        assert len(prober.calls) == 1
        assert all(r is results[0] for r in results)

    def test_probe_failure_propagates_and_is_not_cached(self) -> None:
        prober = FailingProber()
        cache = StatusCache(prober, ttl_seconds=300)

        async def run() -> None:
            for _ in range(2):
                with pytest.raises(RuntimeError):
                    await cache.get_status("broken.example.com")

        asyncio.run(run())

        assert prober.calls == 2
        assert cache.peek("broken.example.com") is None
