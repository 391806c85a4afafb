"""
Retry Manager for certificate tool invocations.

Retries transient tool failures (timeouts, a binary that could not be
started) with exponential backoff. Failures the tool itself reported are
final and returned after the first attempt.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .exceptions import RenewalFailedError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """Manages retry logic with exponential backoff."""

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries and delays
            sleep: Coroutine used to wait between attempts
        """
        self._config = config
        self._sleep = sleep

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        delay(n) = base_delay * 2^n, capped at max_delay.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    @staticmethod
    def is_transient(error: Exception) -> bool:
        """True for tool failures worth another attempt."""
        return isinstance(error, RenewalFailedError) and error.transient

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Decides whether an exception is retried. Defaults
                to ``is_transient``.

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        check = is_retryable or self.is_transient
        last_error: Optional[Exception] = None
        attempts = 0

        # Total attempts = 1 initial + max_retries
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

                if not check(e) or attempts >= max_attempts:
                    break

                await self._sleep(self._calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )
