"""
Property-based tests for the Config Store module.

Uses Hypothesis for property-based testing to verify persistence of the
renewal policy and domain states, HMAC protection and corruption recovery.
"""

import json
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cert_autorenew.activity_log import ActivityLog
from cert_autorenew.enums import ActivityKind, CheckFrequency, InstallMethod, RenewalStatus
from cert_autorenew.exceptions import ConfigCorruptError, ValidationError
from cert_autorenew.models import DomainRenewalState, GlobalPolicy
from cert_autorenew.state_store import ConfigStore


NOW = datetime(2026, 1, 20, 9, 15, tzinfo=timezone.utc)


# Strategies for generating valid test data

@st.composite
def timestamp_strategy(draw) -> datetime:
    """Generate timezone-aware UTC timestamps."""
    offset = draw(st.integers(min_value=0, max_value=5 * 365 * 24 * 3600))
    return datetime(2022, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset)


@st.composite
def domain_state_strategy(draw) -> DomainRenewalState:
    """Generate valid DomainRenewalState objects."""
    sld = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
        min_size=1,
        max_size=20,
    ))
    tld = draw(st.sampled_from(["de", "com", "net", "org", "eu"]))
    return DomainRenewalState(
        domain=f"{sld}.{tld}",
        enabled=draw(st.booleans()),
        install_method=draw(st.one_of(st.none(), st.sampled_from(list(InstallMethod)))),
        status=draw(st.sampled_from(list(RenewalStatus))),
        last_renewal_attempt=draw(st.one_of(st.none(), timestamp_strategy())),
        last_success=draw(st.one_of(st.none(), timestamp_strategy())),
        last_failure=draw(st.one_of(st.none(), timestamp_strategy())),
        last_error=draw(st.one_of(st.none(), st.text(max_size=50))),
    )


@st.composite
def policy_strategy(draw) -> GlobalPolicy:
    """Generate valid GlobalPolicy objects."""
    return GlobalPolicy(
        global_enabled=draw(st.booleans()),
        renewal_window_days=draw(st.integers(min_value=0, max_value=365)),
        check_frequency=draw(st.sampled_from(list(CheckFrequency))),
        max_concurrent_renewals=draw(st.integers(min_value=1, max_value=20)),
        retry_failed_after_hours=draw(st.integers(min_value=0, max_value=720)),
    )


def make_store(tmpdir: str, secret: str = "test-secret") -> ConfigStore:
    data_dir = Path(tmpdir)
    activity = ActivityLog(data_dir / "autorenewal.log", clock=lambda: NOW)
    return ConfigStore(
        data_dir / "autorenewal.json", secret, activity_log=activity, clock=lambda: NOW
    )


class TestDefaultsProperty:
    """
    **Feature: cert-autorenew, Property 15: A missing store yields the default policy**
    """

    def test_missing_file_creates_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)

            policy = store.load_policy()

            assert policy == GlobalPolicy()
            assert policy.global_enabled is True
            assert policy.renewal_window_days == 30
            assert policy.check_frequency == CheckFrequency.DAILY
            assert policy.max_concurrent_renewals == 3
            assert policy.retry_failed_after_hours == 24
            assert store.file_path.exists()

    def test_unknown_domain_is_disabled(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            state = make_store(tmpdir).load_domain_state("new.example.com")

            assert state.enabled is False
            assert state.status == RenewalStatus.UNKNOWN
            assert state.effective_install_method == InstallMethod.HTTP_CHALLENGE

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            ConfigStore(Path("/tmp/unused.json"), "")


class TestPersistenceRoundTripProperty:
    """
    **Feature: cert-autorenew, Property 16: Saved state survives a reload**
    """

    @given(
        policy=policy_strategy(),
        states=st.lists(domain_state_strategy(), max_size=5, unique_by=lambda s: s.domain),
    )
    @settings(max_examples=50, deadline=None)
    def test_state_survives_new_store_instance(
        self, policy: GlobalPolicy, states: list[DomainRenewalState]
    ) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            store.save_policy(policy)
            for state in states:
                store.save_domain_state(state)

            reopened = make_store(tmpdir)

            assert reopened.load_policy() == policy
            assert reopened.list_domain_states() == sorted(states, key=lambda s: s.domain)

    def test_returned_objects_are_copies(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            policy = store.load_policy()
            policy.renewal_window_days = 5

            assert store.load_policy().renewal_window_days == 30

    def test_invalid_policy_is_not_saved(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)

            with pytest.raises(ValidationError):
                store.save_policy(GlobalPolicy(max_concurrent_renewals=0))

            assert make_store(tmpdir).load_policy().max_concurrent_renewals == 3

    def test_document_is_hmac_protected_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            store.save_domain_state(DomainRenewalState(domain="example.com", enabled=True))

            raw = json.loads(store.file_path.read_text())

            assert raw["version"] == ConfigStore.VERSION
            assert raw["domains"]["example.com"]["enabled"] is True
            data = {k: raw[k] for k in ("version", "policy", "domains", "last_updated")}
            assert store.validate_hmac(raw["hmac"], store.compute_hmac(data))


class TestCorruptionFallbackProperty:
    """
    **Feature: cert-autorenew, Property 17: A corrupt store falls back to defaults**
    """

    @given(garbage=st.text(min_size=1, max_size=100))
    @settings(max_examples=30, deadline=None)
    def test_unparseable_file_recovers_to_defaults(self, garbage: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            store.save_policy(GlobalPolicy(renewal_window_days=10))
            store.file_path.write_text(garbage + "{", encoding="utf-8")

            with pytest.raises(ConfigCorruptError):
                store.reload()

            assert store.load_policy() == GlobalPolicy()
            moved = list(Path(tmpdir).glob("autorenewal.json.corrupt-*"))
            assert len(moved) == 1

    def test_tampered_file_fails_hmac_and_recovers(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            store.save_policy(GlobalPolicy(renewal_window_days=10))
            raw = json.loads(store.file_path.read_text())
            raw["policy"]["renewal_window_days"] = 365
            store.file_path.write_text(json.dumps(raw))

            reopened = make_store(tmpdir)
            policy = reopened.load_policy()

            assert policy == GlobalPolicy()
            activity = ActivityLog(Path(tmpdir) / "autorenewal.log").recent(10)
            assert activity[0].event_kind == ActivityKind.CONFIG_CORRUPT.value
            assert activity[0].details["reason"] == "hmac_mismatch"

    def test_wrong_secret_is_treated_as_corruption(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            make_store(tmpdir, "secret-one").save_policy(GlobalPolicy(renewal_window_days=7))

            with pytest.raises(ConfigCorruptError) as exc_info:
                make_store(tmpdir, "secret-two").reload()

            assert exc_info.value.code == "hmac_mismatch"


class TestCycleStatistics:
    """record_cycle only touches counters and timestamps."""

    def test_counters_accumulate(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            store.record_cycle(attempted=3, succeeded=2, failed=1, when=NOW)
            store.record_cycle(attempted=0, succeeded=0, failed=0, when=NOW + timedelta(days=1))

            policy = make_store(tmpdir).load_policy()
            stats = policy.statistics

            assert stats.total_checks == 2
            assert stats.renewals_attempted == 3
            assert stats.renewals_succeeded == 2
            assert stats.renewals_failed == 1
            assert stats.last_check == NOW + timedelta(days=1)
            assert stats.last_renewal == NOW
            assert policy.last_global_check == NOW + timedelta(days=1)

    def test_settings_saved_meanwhile_are_kept(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = make_store(tmpdir)
            policy = store.load_policy()
            policy.renewal_window_days = 14
            store.save_policy(policy)

            store.record_cycle(attempted=1, succeeded=1, failed=0, when=NOW)

            assert store.load_policy().renewal_window_days == 14


class TestDomainStateTransitions:
    """Success clears a failure; failure starts the retry cooldown."""

    def test_success_clears_last_failure(self) -> None:
        state = DomainRenewalState(domain="example.com", enabled=True)
        state.record_failure(NOW, "boom")
        assert state.last_failure == NOW
        assert state.status == RenewalStatus.FAILED

        state.record_success(NOW + timedelta(hours=30))

        assert state.last_failure is None
        assert state.last_error is None
        assert state.last_success == NOW + timedelta(hours=30)
        assert state.status == RenewalStatus.ACTIVE
