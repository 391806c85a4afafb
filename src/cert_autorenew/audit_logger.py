"""
Audit Logger module for the certificate renewal orchestrator.

Provides structured logging with dual-format output (JSON and human-readable
text), minimum-level filtering, optional audit mode with HMAC signing, and
masking of secrets such as DNS API credentials or webhook tokens.
"""

import hashlib
import hmac
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO

from .enums import LogLevel


@dataclass
class LogEntry:
    """Represents a single log entry with all metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)
    signature: Optional[str] = None

    def signable(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }


class AuditLogger:
    """
    Audit logger with dual-format output and optional signing.

    Entries below ``min_level`` are dropped before formatting. Every entry
    that passes is kept in memory (``entries``) so callers and tests can
    inspect what was logged.
    """

    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'hmac_secret',
        'auth', 'authorization', 'credential', 'private_key',
        'auth_password', 'auth_id', 'signing_key',
    })

    MASK_VALUE = "***MASKED***"

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ):
        """
        Initialize the audit logger.

        Args:
            output_format: Output format - 'json', 'text', or 'both'
            output_stream: Output stream for log entries (defaults to sys.stderr)
            min_level: Entries below this level are discarded
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._min_level = min_level
        self._signing_key: Optional[bytes] = None
        self._entries: list[LogEntry] = []

    @classmethod
    def from_config(cls, logging_config, output_stream: Optional[TextIO] = None) -> "AuditLogger":
        """Build a logger from a LoggingConfig."""
        try:
            level = LogLevel(logging_config.level.lower())
        except ValueError:
            level = LogLevel.INFO
        logger = cls(
            output_format=logging_config.output_format,
            output_stream=output_stream,
            min_level=level,
        )
        if logging_config.audit_mode and logging_config.audit_signing_key:
            logger.enable_audit_mode(logging_config.audit_signing_key)
        return logger

    @property
    def audit_mode(self) -> bool:
        return self._signing_key is not None

    @property
    def entries(self) -> list[LogEntry]:
        """Get all logged entries."""
        return self._entries.copy()

    def enable_audit_mode(self, signing_key: str) -> None:
        """Sign every subsequent entry with HMAC-SHA256 over ``signing_key``."""
        if not signing_key:
            raise ValueError("Signing key cannot be empty")
        self._signing_key = signing_key.encode("utf-8")

    def disable_audit_mode(self) -> None:
        self._signing_key = None

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an entry in the configured format(s).

        Returns:
            The created LogEntry, or None if the level was filtered out
        """
        if level.severity < self._min_level.severity:
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        if self._signing_key:
            entry.signature = self._sign_entry(entry)

        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """Log an error together with the exception type and text."""
        data = dict(additional_data or {})
        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
            to_dict = getattr(error, "to_dict", None)
            if callable(to_dict):
                data["error_code"] = to_dict().get("code")
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Recursively replace values of secret-looking keys."""
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(s in key_lower for s in self.SENSITIVE_KEYS):
                masked[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                masked[key] = self.mask_sensitive_data(value)
            elif isinstance(value, list):
                masked[key] = [
                    self.mask_sensitive_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                masked[key] = value
        return masked

    def verify_signature(self, entry: LogEntry) -> bool:
        """Check an entry's signature against the current signing key."""
        if not entry.signature or not self._signing_key:
            return False
        return hmac.compare_digest(entry.signature, self._sign_entry(entry))

    def format_json(self, entry: LogEntry) -> str:
        obj = entry.signable()
        if entry.signature:
            obj["signature"] = entry.signature
        return json.dumps(obj, ensure_ascii=False, default=str)

    def format_text(self, entry: LogEntry) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{entry.timestamp}]",
            entry.level.value.upper(),
            f"[{entry.component}]",
            entry.message,
        ]
        if entry.data:
            parts.append(json.dumps(entry.data, ensure_ascii=False, default=str))
        text = " ".join(parts)
        if entry.signature:
            text += f" [sig:{entry.signature[:16]}...]"
        return text

    def clear_entries(self) -> None:
        self._entries.clear()

    def _sign_entry(self, entry: LogEntry) -> str:
        assert self._signing_key is not None
        content = json.dumps(
            entry.signable(), sort_keys=True, ensure_ascii=False, default=str
        )
        return hmac.new(
            self._signing_key, content.encode("utf-8"), hashlib.sha256
        ).hexdigest()

    def _write(self, entry: LogEntry) -> None:
        if self._output_format in ("json", "both"):
            self._output_stream.write(self.format_json(entry) + "\n")
        if self._output_format in ("text", "both"):
            self._output_stream.write(self.format_text(entry) + "\n")
        self._output_stream.flush()
