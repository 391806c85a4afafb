"""
Enumeration types for the certificate renewal orchestrator.

These enums provide type-safe constants for renewal status, installation
methods, check cadence, activity kinds and error codes.
"""

from enum import Enum


class InstallMethod(Enum):
    """Challenge mechanism used to prove domain control to the tool."""

    HTTP_CHALLENGE = "http"
    DNS_CHALLENGE = "dns"


class RenewalStatus(Enum):
    """Outcome of the most recent renewal attempt for a domain."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    FAILED = "failed"
    ERROR = "error"


class CheckFrequency(Enum):
    """Cadence of scheduled renewal checks."""

    HOURLY = "hourly"
    TWICE_DAILY = "twice-daily"
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def interval_seconds(self) -> float:
        """Seconds between two scheduled checks."""
        return {
            CheckFrequency.HOURLY: 60 * 60,
            CheckFrequency.TWICE_DAILY: 12 * 60 * 60,
            CheckFrequency.DAILY: 24 * 60 * 60,
            CheckFrequency.WEEKLY: 7 * 24 * 60 * 60,
        }[self]


class ProbeSource(Enum):
    """Channel that produced a certificate status."""

    FILE = "file"
    LIVE = "live"
    NONE = "none"


class ActivityKind(Enum):
    """Kinds of entries written to the activity log."""

    CHECK_STARTED = "CHECK_STARTED"
    CHECK_ANALYSIS = "CHECK_ANALYSIS"
    CHECK_COMPLETED = "CHECK_COMPLETED"
    CHECK_SKIPPED = "CHECK_SKIPPED"
    CHECK_ERROR = "CHECK_ERROR"
    STALE_LOCK_RELEASED = "STALE_LOCK_RELEASED"
    RENEWAL_STARTED = "RENEWAL_STARTED"
    RENEWAL_SUCCESS = "RENEWAL_SUCCESS"
    RENEWAL_FAILED = "RENEWAL_FAILED"
    RENEWAL_ERROR = "RENEWAL_ERROR"
    RENEWAL_SKIPPED = "RENEWAL_SKIPPED"
    TOOL_BUSY = "TOOL_BUSY"
    INSTALL_SUCCESS = "INSTALL_SUCCESS"
    INSTALL_FAILED = "INSTALL_FAILED"
    SETTINGS_UPDATED = "SETTINGS_UPDATED"
    DOMAIN_TOGGLED = "DOMAIN_TOGGLED"
    SCHEDULER_SETUP = "SCHEDULER_SETUP"
    SCHEDULER_CLEARED = "SCHEDULER_CLEARED"
    CONFIG_CORRUPT = "CONFIG_CORRUPT"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        """Numeric rank used for minimum-level filtering."""
        return {
            LogLevel.DEBUG: 10,
            LogLevel.INFO: 20,
            LogLevel.WARN: 30,
            LogLevel.ERROR: 40,
        }[self]


class DomainValidationErrorCode(Enum):
    """Error codes for domain validation failures."""

    EMPTY_INPUT = "empty_input"
    FORBIDDEN_CHARS = "forbidden_chars"
    IDNA_ERROR = "idna_error"
    INVALID_LABEL = "invalid_label"
    TOO_LONG = "too_long"
