"""
Global run lock for scheduler ticks.

The lock is a small JSON file created with ``O_EXCL`` so that only one tick
at a time, across processes, runs a renewal cycle. A lock older than the
staleness threshold belongs to a crashed run and may be force-released.
"""

import json
import os
import secrets
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .exceptions import PersistenceError
from .models import RunLockRecord


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_owner_id() -> str:
    """host:pid plus a random suffix."""
    return f"{socket.gethostname()}:{os.getpid()}:{secrets.token_hex(4)}"


class RunLock:
    """File-based, stale-aware global lock."""

    def __init__(
        self,
        file_path: Path,
        stale_after_seconds: float,
        clock: Optional[Callable[[], datetime]] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        self._file_path = file_path
        self._stale_after_seconds = stale_after_seconds
        self._clock = clock or _utc_now
        self._owner_id = owner_id or make_owner_id()

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def file_path(self) -> Path:
        return self._file_path

    def read(self) -> Optional[RunLockRecord]:
        """
        Return the current lock record, or None when no lock is held.

        A lock file that cannot be parsed is reported with the epoch as its
        acquisition time, which makes it stale.
        """
        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return RunLockRecord(
                acquired_at=datetime.fromisoformat(raw["acquired_at"]),
                owner_id=str(raw["owner_id"]),
            )
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read run lock: {e}",
                details={"file_path": str(self._file_path)},
            )
        except (ValueError, KeyError, TypeError):
            return RunLockRecord(
                acquired_at=datetime.fromtimestamp(0, timezone.utc),
                owner_id="unknown",
            )

    def is_stale(self, record: RunLockRecord, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        age = (now - record.acquired_at).total_seconds()
        return age > self._stale_after_seconds

    def try_acquire(self) -> bool:
        """
        Create the lock file if no lock exists.

        Returns:
            True if this owner now holds the lock

        Raises:
            PersistenceError: If the lock file cannot be created
        """
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            {
                "acquired_at": self._clock().isoformat(),
                "owner_id": self._owner_id,
                "pid": os.getpid(),
            }
        )
        try:
            fd = os.open(self._file_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to create run lock: {e}",
                details={"file_path": str(self._file_path)},
            )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        return True

    def release(self, force: bool = False) -> bool:
        """
        Remove the lock file.

        Without ``force`` only a lock held by this owner is removed.

        Returns:
            True if a lock file was removed
        """
        if not force:
            record = self.read()
            if record is None or record.owner_id != self._owner_id:
                return False
        try:
            self._file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to release run lock: {e}",
                details={"file_path": str(self._file_path)},
            )
        return True
