"""
Eligibility Evaluator for automatic renewal.

A domain qualifies for renewal now only when every condition holds:
1. automatic renewal is enabled for it
2. it is not already being worked on
3. a certificate was found
4. the certificate expires within the renewal window
5. no failure was recorded, or the retry cooldown has elapsed

Every rejection carries a human-readable reason.
"""

import math
from datetime import datetime
from typing import Optional

from .models import DomainRenewalState, EligibilityDecision, GlobalPolicy, SSLStatus

REASON_DISABLED = "Autorenewal disabled"
REASON_IN_PROGRESS = "Renewal in progress"
REASON_NO_CERTIFICATE = "No SSL certificate found"


class EligibilityEvaluator:
    """Decides whether a domain should be renewed in the current cycle."""

    def pre_check(
        self, state: DomainRenewalState, in_processing: bool
    ) -> Optional[EligibilityDecision]:
        """
        Rejections that need no certificate status.

        Returns:
            A rejecting decision, or None if the domain should be probed
        """
        if not state.enabled:
            return self._reject(state.domain, REASON_DISABLED)
        if in_processing:
            return self._reject(state.domain, REASON_IN_PROGRESS)
        return None

    def evaluate(
        self,
        state: DomainRenewalState,
        policy: GlobalPolicy,
        status: Optional[SSLStatus],
        in_processing: bool,
        now: datetime,
    ) -> EligibilityDecision:
        """
        Evaluate all eligibility conditions in order.

        Args:
            state: Persisted renewal state of the domain
            policy: Current global policy
            status: Certificate status (None when nothing was found)
            in_processing: Whether the domain is mid-operation
            now: Current time

        Returns:
            EligibilityDecision with the verdict and its reason
        """
        rejected = self.pre_check(state, in_processing)
        if rejected is not None:
            return rejected

        if status is None or not status.has_certificate:
            return self._reject(state.domain, REASON_NO_CERTIFICATE)

        days = status.days_until_expiry or 0
        if days > policy.renewal_window_days:
            return self._reject(
                state.domain,
                f"Certificate expires in {days} days "
                f"(renewal threshold: {policy.renewal_window_days} days)",
                days,
            )

        if state.last_failure is not None:
            cooldown = policy.retry_failed_after_hours * 3600
            elapsed = (now - state.last_failure).total_seconds()
            if elapsed < cooldown:
                hours_left = math.ceil((cooldown - elapsed) / 3600)
                return self._reject(
                    state.domain,
                    f"Recent failure, retry in {hours_left} hours",
                    days,
                )

        return EligibilityDecision(
            domain=state.domain,
            eligible=True,
            reason=f"Certificate expires in {days} days",
            days_until_expiry=days,
        )

    @staticmethod
    def _reject(
        domain: str, reason: str, days: Optional[int] = None
    ) -> EligibilityDecision:
        return EligibilityDecision(
            domain=domain, eligible=False, reason=reason, days_until_expiry=days
        )
