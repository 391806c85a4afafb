"""
Exception classes for the certificate renewal orchestrator.

All exceptions inherit from CertAutoRenewError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class CertAutoRenewError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(CertAutoRenewError):
    """Raised when a domain name, e-mail address or policy value is invalid."""

    pass


class PersistenceError(CertAutoRenewError):
    """Raised when persistence operations fail (file I/O, lock files)."""

    pass


class ConfigCorruptError(PersistenceError):
    """Raised when persisted policy or domain state cannot be read back."""

    pass


class ToolBusyError(CertAutoRenewError):
    """Raised when the external certificate tool stays busy after all retries."""

    pass


class ProbeUnavailableError(CertAutoRenewError):
    """Raised when a probe channel could not determine certificate status."""

    pass


class RenewalFailedError(CertAutoRenewError):
    """
    Raised when the certificate tool ran but reported failure.

    ``transient`` marks failures worth retrying within the same attempt
    (the process timed out or could not be started).
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
        transient: bool = False,
    ) -> None:
        super().__init__(code, message, details)
        self.transient = transient


class EventDeliveryError(CertAutoRenewError):
    """Raised when an event sink fails to deliver an event."""

    pass
