"""
Domain validation and normalization module.

Every name handed to the external certificate tool passes through here:
names are lowercased, IDNA-encoded, and rejected if they contain characters
or labels that are not valid in a host name.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import ValidationError


# Forbidden characters in domain names (control chars, spaces, special symbols)
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)

LABEL_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_DOMAIN_LENGTH = 253


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]


class DomainValidator:
    """Validates and normalizes host names before they reach the tool."""

    def validate(self, raw_domain: str) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not raw_domain or not raw_domain.strip():
            return self._invalid(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain input is empty",
                {"raw_input": raw_domain},
            )

        domain = raw_domain.strip().rstrip(".")

        forbidden_found = FORBIDDEN_CHARS_PATTERN.findall(domain)
        if forbidden_found:
            return self._invalid(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains forbidden characters",
                {"raw_input": raw_domain, "forbidden_chars": forbidden_found},
            )

        try:
            canonical = self.normalize_to_canonical(domain)
        except ValidationError as e:
            return self._invalid(
                DomainValidationErrorCode.IDNA_ERROR, e.message, e.details
            )

        if len(canonical) > MAX_DOMAIN_LENGTH:
            return self._invalid(
                DomainValidationErrorCode.TOO_LONG,
                f"Domain exceeds {MAX_DOMAIN_LENGTH} characters",
                {"raw_input": raw_domain, "length": len(canonical)},
            )

        bad_labels = [
            label for label in canonical.split(".") if not LABEL_PATTERN.match(label)
        ]
        if bad_labels or "." not in canonical:
            return self._invalid(
                DomainValidationErrorCode.INVALID_LABEL,
                "Domain must consist of at least two valid labels",
                {"raw_input": raw_domain, "invalid_labels": bad_labels},
            )

        return DomainValidationResult(
            valid=True,
            canonical_domain=canonical,
            error=None,
        )

    def require_valid(self, raw_domain: str) -> str:
        """
        Return the canonical form of a domain or raise.

        Raises:
            ValidationError: If the domain is not valid
        """
        result = self.validate(raw_domain)
        if not result.valid:
            assert result.error is not None
            raise ValidationError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        assert result.canonical_domain is not None
        return result.canonical_domain

    def normalize_to_canonical(self, domain: str) -> str:
        """
        Convert domain to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.lower()

        if any(ord(c) > 127 for c in domain_lower):
            try:
                return idna.encode(domain_lower, uts46=True).decode("ascii")
            except idna.IDNAError as e:
                raise ValidationError(
                    code=DomainValidationErrorCode.IDNA_ERROR.value,
                    message=f"IDNA encoding failed: {e}",
                    details={"domain": domain, "idna_error": str(e)},
                )
        return domain_lower

    def is_valid_email(self, email: Optional[str]) -> bool:
        """Check an ACME account e-mail address for basic shape."""
        return bool(email) and EMAIL_PATTERN.match(email) is not None

    @staticmethod
    def _invalid(
        code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )
