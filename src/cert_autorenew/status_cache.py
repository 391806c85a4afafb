"""
TTL cache over the Status Prober.

Repeated reads within the TTL return the identical SSLStatus object, which
keeps a domain's reported expiry from flapping between probe channels.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .models import SSLStatus
from .prober import StatusProber


@dataclass
class CacheEntry:
    status: SSLStatus
    fetched_at: float


class StatusCache:
    """Per-domain memoization of probe results with a fixed TTL."""

    def __init__(
        self,
        prober: StatusProber,
        ttl_seconds: float = 300.0,
        logger: Optional[AuditLogger] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._prober = prober
        self._ttl_seconds = ttl_seconds
        self._logger = logger
        self._monotonic = monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._pending: dict[str, asyncio.Future] = {}

    async def get_status(
        self, domain: str, certificate_path: Optional[str] = None
    ) -> SSLStatus:
        """
        Return the cached status of ``domain``, probing on a miss.

        A domain without a certificate is cached as an absent status.
        Concurrent misses for one domain share a single probe.
        """
        entry = self._entries.get(domain)
        if entry is not None and self._monotonic() - entry.fetched_at < self._ttl_seconds:
            return entry.status

        pending = self._pending.get(domain)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[domain] = future
        try:
            status = await self._prober.probe(domain, certificate_path)
            if status is None:
                status = SSLStatus.absent(domain)
            self._entries[domain] = CacheEntry(status=status, fetched_at=self._monotonic())
            future.set_result(status)
            return status
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited failure is not reported by asyncio
            future.exception()
            raise
        finally:
            del self._pending[domain]

    def peek(self, domain: str) -> Optional[SSLStatus]:
        """Cached status regardless of age, without probing."""
        entry = self._entries.get(domain)
        return entry.status if entry else None

    def invalidate(self, domain: str) -> None:
        """Drop the cached status of one domain."""
        if self._entries.pop(domain, None) is not None and self._logger:
            self._logger.log(
                LogLevel.DEBUG, "StatusCache", f"Invalidated {domain}", {"domain": domain}
            )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
