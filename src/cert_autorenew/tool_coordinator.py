"""
Tool Coordinator: serializes all mutating certificate tool operations.

Three guards apply to every operation:
- a per-domain processing set, so one domain is never worked on twice;
- a process-wide mutex, so at most one tool invocation is in flight;
- a system-wide busy check, so the tool is not started while another
  instance (cron, an operator) is running it.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from .audit_logger import AuditLogger
from .config import CoordinationConfig
from .enums import LogLevel
from .events import EventBus
from .exceptions import ToolBusyError

T = TypeVar("T")

BusyCheck = Callable[[], Awaitable[bool]]


async def _never_busy() -> bool:
    return False


class ProcessingSet:
    """Domains currently mid-operation, with timestamp-based staleness."""

    def __init__(
        self,
        stale_after_seconds: float = 300.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stale_after_seconds = stale_after_seconds
        self._monotonic = monotonic
        self._entries: dict[str, float] = {}

    def __contains__(self, domain: object) -> bool:
        started = self._entries.get(domain)  # type: ignore[arg-type]
        if started is None:
            return False
        if self._monotonic() - started >= self._stale_after_seconds:
            del self._entries[domain]  # type: ignore[arg-type]
            return False
        return True

    def __len__(self) -> int:
        return len(self.snapshot())

    def add(self, domain: str) -> None:
        self._entries[domain] = self._monotonic()

    def discard(self, domain: str) -> None:
        self._entries.pop(domain, None)

    def evict_stale(self) -> list[str]:
        """Remove and return entries older than the staleness window."""
        now = self._monotonic()
        stale = [
            domain
            for domain, started in self._entries.items()
            if now - started >= self._stale_after_seconds
        ]
        for domain in stale:
            del self._entries[domain]
        return stale

    def snapshot(self) -> list[str]:
        """Sorted list of non-stale domains."""
        self.evict_stale()
        return sorted(self._entries)


class ToolCoordinator:
    """Runs operations with exclusive access to the certificate tool."""

    def __init__(
        self,
        config: CoordinationConfig,
        busy_check: Optional[BusyCheck] = None,
        processing: Optional[ProcessingSet] = None,
        events: Optional[EventBus] = None,
        logger: Optional[AuditLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            config: Poll intervals, busy retry count and delay
            busy_check: Returns True while the tool is active system-wide
            processing: Shared processing set (created if omitted)
            events: Receives ``tool_waiting`` events
            logger: Optional audit logger
            sleep: Coroutine used for all waits
        """
        self._config = config
        self._busy_check = busy_check or _never_busy
        self._processing = processing or ProcessingSet(config.processing_stale_seconds)
        self._events = events
        self._logger = logger
        self._sleep = sleep
        self._mutex = asyncio.Lock()

    @property
    def processing(self) -> ProcessingSet:
        return self._processing

    def in_processing(self, domain: str) -> bool:
        return domain in self._processing

    async def with_exclusive_access(
        self, domain: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        """
        Run ``operation`` while holding the domain slot and the tool mutex.

        Raises:
            ToolBusyError: If the tool stayed busy for every check
        """
        await self._wait_for_domain(domain)
        self._processing.add(domain)
        try:
            async with self._mutex:
                await self._wait_for_tool(domain)
                return await operation()
        finally:
            self._processing.discard(domain)

    async def _wait_for_domain(self, domain: str) -> None:
        # Membership checks evict the entry once it is stale
        if domain in self._processing:
            self._log(
                LogLevel.INFO,
                f"Waiting for in-progress operation on {domain}",
                {"domain": domain},
            )
        while domain in self._processing:
            await self._sleep(self._config.processing_poll_seconds)

    async def _wait_for_tool(self, domain: str) -> None:
        attempts = self._config.busy_retry_count
        for attempt in range(1, attempts + 1):
            if not await self._busy_check():
                return
            if attempt == attempts:
                break
            self._log(
                LogLevel.WARN,
                f"Certificate tool busy, waiting {self._config.busy_retry_delay_seconds}s",
                {"domain": domain, "attempt": attempt, "max_attempts": attempts},
            )
            if self._events:
                self._events.emit(
                    "tool_waiting",
                    {
                        "domain": domain,
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "delay_seconds": self._config.busy_retry_delay_seconds,
                    },
                )
            await self._sleep(self._config.busy_retry_delay_seconds)

        raise ToolBusyError(
            code="tool_busy",
            message=f"Certificate tool still busy after {attempts} checks",
            details={"domain": domain, "attempts": attempts},
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ToolCoordinator", message, data)
