"""
Data models for the certificate renewal orchestrator.

This module defines the persisted renewal state and policy, the cached
certificate status, coordination records, activity entries, and the results
returned by renewal cycles.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import CheckFrequency, InstallMethod, ProbeSource, RenewalStatus
from .exceptions import ValidationError

# Domain value used for activity entries that concern the whole system
SYSTEM_DOMAIN = "SYSTEM"

# Certificates with this many days left or fewer are "expiring soon"
EXPIRING_SOON_DAYS = 30


@dataclass
class DomainRenewalState:
    """Persistent renewal state for a single managed domain."""

    domain: str
    enabled: bool = False
    install_method: Optional[InstallMethod] = None
    status: RenewalStatus = RenewalStatus.UNKNOWN
    last_renewal_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def effective_install_method(self) -> InstallMethod:
        """Install method to use for renewals (HTTP until recorded otherwise)."""
        return self.install_method or InstallMethod.HTTP_CHALLENGE

    def record_success(self, when: datetime) -> None:
        """Mark a successful renewal; any earlier failure is cleared."""
        self.last_success = when
        self.last_failure = None
        self.last_error = None
        self.status = RenewalStatus.ACTIVE

    def record_failure(
        self,
        when: datetime,
        error: str,
        status: RenewalStatus = RenewalStatus.FAILED,
    ) -> None:
        """Mark a failed renewal attempt, starting the retry cooldown."""
        self.last_failure = when
        self.last_error = error
        self.status = status


@dataclass
class RenewalStatistics:
    """Monotonically increasing counters for renewal activity."""

    total_checks: int = 0
    renewals_attempted: int = 0
    renewals_succeeded: int = 0
    renewals_failed: int = 0
    last_check: Optional[datetime] = None
    last_renewal: Optional[datetime] = None


@dataclass
class GlobalPolicy:
    """Global renewal policy (singleton)."""

    global_enabled: bool = True
    renewal_window_days: int = 30
    check_frequency: CheckFrequency = CheckFrequency.DAILY
    max_concurrent_renewals: int = 3
    retry_failed_after_hours: int = 24
    statistics: RenewalStatistics = field(default_factory=RenewalStatistics)
    last_global_check: Optional[datetime] = None

    def validate(self) -> None:
        """
        Check that all policy values are within range.

        Raises:
            ValidationError: If any value is out of range
        """
        errors = {}
        if self.renewal_window_days < 0:
            errors["renewal_window_days"] = self.renewal_window_days
        if self.max_concurrent_renewals < 1:
            errors["max_concurrent_renewals"] = self.max_concurrent_renewals
        if self.retry_failed_after_hours < 0:
            errors["retry_failed_after_hours"] = self.retry_failed_after_hours
        if errors:
            raise ValidationError(
                code="invalid_policy",
                message=f"Policy values out of range: {', '.join(sorted(errors))}",
                details=errors,
            )


@dataclass(frozen=True)
class SSLStatus:
    """Certificate status of a domain as seen by the status prober."""

    domain: str
    has_certificate: bool
    expiry: Optional[datetime] = None
    days_until_expiry: Optional[int] = None
    is_expired: bool = False
    is_expiring_soon: bool = False
    issuer: Optional[str] = None
    source: ProbeSource = ProbeSource.NONE

    @classmethod
    def absent(cls, domain: str) -> "SSLStatus":
        """Status for a domain with no detectable certificate."""
        return cls(domain=domain, has_certificate=False)

    @classmethod
    def from_expiry(
        cls,
        domain: str,
        expiry: datetime,
        issuer: Optional[str],
        source: ProbeSource,
        now: datetime,
    ) -> "SSLStatus":
        """Build a status from a certificate's notAfter, counting calendar days."""
        days = (expiry.date() - now.date()).days
        return cls(
            domain=domain,
            has_certificate=True,
            expiry=expiry,
            days_until_expiry=days,
            is_expired=days < 0,
            is_expiring_soon=0 <= days <= EXPIRING_SOON_DAYS,
            issuer=issuer,
            source=source,
        )

    def with_domain(self, domain: str) -> "SSLStatus":
        """Copy of this status reported under another domain name."""
        return SSLStatus(
            domain=domain,
            has_certificate=self.has_certificate,
            expiry=self.expiry,
            days_until_expiry=self.days_until_expiry,
            is_expired=self.is_expired,
            is_expiring_soon=self.is_expiring_soon,
            issuer=self.issuer,
            source=self.source,
        )


@dataclass(frozen=True)
class RunLockRecord:
    """The global run lock held by one scheduler tick."""

    acquired_at: datetime
    owner_id: str


@dataclass(frozen=True)
class ActivityLogEntry:
    """A single append-only activity log entry."""

    timestamp: datetime
    domain: str
    event_kind: str
    message: str
    details: Optional[dict] = None


@dataclass
class DiscoveredHost:
    """A virtual host reported by the discovery collaborator."""

    domain: str
    certificate_path: Optional[str] = None


@dataclass
class ToolResult:
    """Pass/fail result of one certificate tool invocation."""

    success: bool
    method: InstallMethod
    message: str
    output: str = ""
    certificate_path: Optional[str] = None


@dataclass
class EligibilityDecision:
    """Eligibility verdict for one domain with a human-readable reason."""

    domain: str
    eligible: bool
    reason: str
    days_until_expiry: Optional[int] = None


@dataclass
class RenewalDetail:
    """Per-domain line of a cycle report."""

    domain: str
    action: str  # 'check', 'renew'
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CycleResult:
    """Counts and per-domain details of one batch renewal cycle."""

    checked: int = 0
    eligible: int = 0
    renewed: int = 0
    failed: int = 0
    skipped: int = 0
    # Domains whose state or status lookup raised; no renewal was attempted
    check_errors: int = 0
    details: list[RenewalDetail] = field(default_factory=list)
    attempted: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "eligible": self.eligible,
            "renewed": self.renewed,
            "failed": self.failed,
            "skipped": self.skipped,
            "check_errors": self.check_errors,
            "details": [
                {
                    "domain": d.domain,
                    "action": d.action,
                    "success": d.success,
                    "message": d.message,
                    "error": d.error,
                }
                for d in self.details
            ],
        }


@dataclass
class TickResult:
    """Outcome of one scheduler tick."""

    skipped: bool
    message: str
    started_at: datetime
    result: CycleResult = field(default_factory=CycleResult)

    @property
    def checked(self) -> int:
        return self.result.checked
