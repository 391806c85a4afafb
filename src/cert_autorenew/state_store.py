"""
Config Store module for the renewal policy and per-domain renewal state.

The policy and every domain's state live in a single JSON document protected
by an HMAC-SHA256 over its content. Writes go to a temporary file that is
renamed over the old one, so a crash never leaves a half-written document.
A document that cannot be parsed or fails HMAC validation is moved aside and
replaced by defaults.
"""

import copy
import hashlib
import hmac
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .activity_log import ActivityLog
from .audit_logger import AuditLogger
from .enums import ActivityKind, CheckFrequency, InstallMethod, LogLevel, RenewalStatus
from .exceptions import ConfigCorruptError, PersistenceError
from .models import SYSTEM_DOMAIN, DomainRenewalState, GlobalPolicy, RenewalStatistics


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to a temp file next to ``path``, fsync, then rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def policy_to_dict(policy: GlobalPolicy) -> dict:
    stats = policy.statistics
    return {
        "global_enabled": policy.global_enabled,
        "renewal_window_days": policy.renewal_window_days,
        "check_frequency": policy.check_frequency.value,
        "max_concurrent_renewals": policy.max_concurrent_renewals,
        "retry_failed_after_hours": policy.retry_failed_after_hours,
        "last_global_check": _dt_to_str(policy.last_global_check),
        "statistics": {
            "total_checks": stats.total_checks,
            "renewals_attempted": stats.renewals_attempted,
            "renewals_succeeded": stats.renewals_succeeded,
            "renewals_failed": stats.renewals_failed,
            "last_check": _dt_to_str(stats.last_check),
            "last_renewal": _dt_to_str(stats.last_renewal),
        },
    }


def policy_from_dict(data: dict) -> GlobalPolicy:
    stats = data.get("statistics") or {}
    return GlobalPolicy(
        global_enabled=bool(data["global_enabled"]),
        renewal_window_days=int(data["renewal_window_days"]),
        check_frequency=CheckFrequency(data["check_frequency"]),
        max_concurrent_renewals=int(data["max_concurrent_renewals"]),
        retry_failed_after_hours=int(data["retry_failed_after_hours"]),
        last_global_check=_str_to_dt(data.get("last_global_check")),
        statistics=RenewalStatistics(
            total_checks=int(stats.get("total_checks", 0)),
            renewals_attempted=int(stats.get("renewals_attempted", 0)),
            renewals_succeeded=int(stats.get("renewals_succeeded", 0)),
            renewals_failed=int(stats.get("renewals_failed", 0)),
            last_check=_str_to_dt(stats.get("last_check")),
            last_renewal=_str_to_dt(stats.get("last_renewal")),
        ),
    )


def domain_state_to_dict(state: DomainRenewalState) -> dict:
    return {
        "enabled": state.enabled,
        "install_method": state.install_method.value if state.install_method else None,
        "status": state.status.value,
        "last_renewal_attempt": _dt_to_str(state.last_renewal_attempt),
        "last_success": _dt_to_str(state.last_success),
        "last_failure": _dt_to_str(state.last_failure),
        "last_error": state.last_error,
    }


def domain_state_from_dict(domain: str, data: dict) -> DomainRenewalState:
    method = data.get("install_method")
    return DomainRenewalState(
        domain=domain,
        enabled=bool(data.get("enabled", False)),
        install_method=InstallMethod(method) if method else None,
        status=RenewalStatus(data.get("status", RenewalStatus.UNKNOWN.value)),
        last_renewal_attempt=_str_to_dt(data.get("last_renewal_attempt")),
        last_success=_str_to_dt(data.get("last_success")),
        last_failure=_str_to_dt(data.get("last_failure")),
        last_error=data.get("last_error"),
    )


class ConfigStore:
    """
    Persistent policy and domain state storage with HMAC protection.

    The document is read lazily on first access and cached; ``reload()``
    re-reads it from disk. Every mutation is written through immediately.
    Objects handed out are copies, so callers save changes explicitly.
    """

    VERSION = 1

    def __init__(
        self,
        file_path: Path,
        hmac_secret: str,
        activity_log: Optional[ActivityLog] = None,
        logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the config store.

        Args:
            file_path: Path to the state file (JSON format)
            hmac_secret: Secret key for HMAC computation
            activity_log: Receives a CONFIG_CORRUPT entry on recovery
            logger: Optional audit logger
            clock: Source of the current time
        """
        if not hmac_secret:
            raise ValueError("HMAC secret cannot be empty")
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._activity_log = activity_log
        self._logger = logger
        self._clock = clock or _utc_now
        self._policy: Optional[GlobalPolicy] = None
        self._domains: dict[str, DomainRenewalState] = {}

    @property
    def file_path(self) -> Path:
        return self._file_path

    def reload(self) -> None:
        """
        Re-read the document from disk.

        A missing document is created with defaults.

        Raises:
            ConfigCorruptError: After a corrupt document was moved aside and
                replaced by defaults
            PersistenceError: If the file cannot be read or written
        """
        try:
            self._read()
        except ConfigCorruptError as e:
            self._recover(e)
            raise

    def load_policy(self) -> GlobalPolicy:
        """Get a copy of the current global policy."""
        self._ensure_loaded()
        return copy.deepcopy(self._policy)

    def save_policy(self, policy: GlobalPolicy) -> None:
        """
        Validate and persist the global policy.

        Raises:
            ValidationError: If a policy value is out of range
            PersistenceError: If the file cannot be written
        """
        policy.validate()
        self._ensure_loaded()
        self._policy = copy.deepcopy(policy)
        self._write()

    def record_cycle(
        self,
        attempted: int,
        succeeded: int,
        failed: int,
        when: datetime,
    ) -> GlobalPolicy:
        """
        Count one completed cycle in the statistics and persist them.

        Only the counters and timestamps change, so settings saved while a
        cycle was running are kept.
        """
        self._ensure_loaded()
        assert self._policy is not None
        stats = self._policy.statistics
        stats.total_checks += 1
        stats.renewals_attempted += attempted
        stats.renewals_succeeded += succeeded
        stats.renewals_failed += failed
        stats.last_check = when
        if attempted:
            stats.last_renewal = when
        self._policy.last_global_check = when
        self._write()
        return copy.deepcopy(self._policy)

    def load_domain_state(self, domain: str) -> DomainRenewalState:
        """Get a copy of a domain's state; unknown domains are disabled."""
        self._ensure_loaded()
        state = self._domains.get(domain)
        if state is None:
            return DomainRenewalState(domain=domain)
        return copy.deepcopy(state)

    def save_domain_state(self, state: DomainRenewalState) -> None:
        """Persist one domain's state."""
        self._ensure_loaded()
        self._domains[state.domain] = copy.deepcopy(state)
        self._write()

    def list_domain_states(self) -> list[DomainRenewalState]:
        """All stored domain states ordered by domain name."""
        self._ensure_loaded()
        return [copy.deepcopy(self._domains[d]) for d in sorted(self._domains)]

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(stored_hmac, computed_hmac)

    def _ensure_loaded(self) -> None:
        if self._policy is not None:
            return
        try:
            self._read()
        except ConfigCorruptError as e:
            self._recover(e)

    def _read(self) -> None:
        if not self._file_path.exists():
            self._policy = GlobalPolicy()
            self._domains = {}
            self._write()
            self._log(LogLevel.INFO, "Created default renewal policy", {})
            return

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigCorruptError(
                code="parse_error",
                message=f"Failed to parse state file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read state file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw_data, dict):
            raise ConfigCorruptError(
                code="parse_error",
                message="State file does not contain a JSON object",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        data_for_hmac = {
            "version": raw_data.get("version"),
            "policy": raw_data.get("policy"),
            "domains": raw_data.get("domains", {}),
            "last_updated": raw_data.get("last_updated"),
        }
        computed_hmac = self.compute_hmac(data_for_hmac)
        if not isinstance(stored_hmac, str) or not self.validate_hmac(
            stored_hmac, computed_hmac
        ):
            raise ConfigCorruptError(
                code="hmac_mismatch",
                message="HMAC validation failed - data may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        try:
            policy = policy_from_dict(raw_data["policy"])
            policy.validate()
            domains = {
                name: domain_state_from_dict(name, entry)
                for name, entry in raw_data.get("domains", {}).items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigCorruptError(
                code="invalid_content",
                message=f"State file content is invalid: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._policy = policy
        self._domains = domains

    def _write(self) -> None:
        assert self._policy is not None
        now = self._clock().isoformat()
        data = {
            "version": self.VERSION,
            "policy": policy_to_dict(self._policy),
            "domains": {
                name: domain_state_to_dict(state)
                for name, state in sorted(self._domains.items())
            },
            "last_updated": now,
        }
        data["hmac"] = self.compute_hmac(data)

        try:
            atomic_write_text(
                self._file_path, json.dumps(data, indent=2, sort_keys=True)
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write state file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def _recover(self, error: ConfigCorruptError) -> None:
        stamp = self._clock().strftime("%Y%m%dT%H%M%S")
        moved_to = self._file_path.with_name(f"{self._file_path.name}.corrupt-{stamp}")
        try:
            os.replace(self._file_path, moved_to)
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to move corrupt state file aside: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._policy = GlobalPolicy()
        self._domains = {}
        self._write()

        details = {"reason": error.code, "moved_to": str(moved_to)}
        self._log(LogLevel.ERROR, f"Corrupt state file replaced by defaults: {error.message}", details)
        if self._activity_log:
            self._activity_log.record(
                SYSTEM_DOMAIN,
                ActivityKind.CONFIG_CORRUPT,
                "Configuration was corrupt and has been reset to defaults",
                details,
            )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ConfigStore", message, data)
