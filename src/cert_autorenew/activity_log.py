"""
Append-only activity log.

Each entry is written as one JSON object per line. Entries are never
rewritten; truncation and rotation are left to external tooling.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .enums import ActivityKind
from .exceptions import PersistenceError
from .models import ActivityLogEntry


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActivityLog:
    """JSON-lines activity log with newest-first reads."""

    DEFAULT_LIMIT = 100

    def __init__(
        self,
        file_path: Path,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._file_path = file_path
        self._clock = clock or _utc_now

    @property
    def file_path(self) -> Path:
        return self._file_path

    def append(self, entry: ActivityLogEntry) -> None:
        """
        Append one entry to the log.

        Raises:
            PersistenceError: If the log file cannot be written
        """
        line = json.dumps(
            {
                "timestamp": entry.timestamp.isoformat(),
                "domain": entry.domain,
                "event_kind": entry.event_kind,
                "message": entry.message,
                "details": entry.details,
            },
            ensure_ascii=False,
            default=str,
        )
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._file_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to append activity log: {e}",
                details={"file_path": str(self._file_path)},
            )

    def record(
        self,
        domain: str,
        kind: ActivityKind,
        message: str,
        details: Optional[dict] = None,
    ) -> ActivityLogEntry:
        """Create an entry stamped with the current time and append it."""
        entry = ActivityLogEntry(
            timestamp=self._clock(),
            domain=domain,
            event_kind=kind.value,
            message=message,
            details=details,
        )
        self.append(entry)
        return entry

    def recent(self, limit: int = DEFAULT_LIMIT) -> list[ActivityLogEntry]:
        """
        Return up to ``limit`` entries, newest first.

        Lines that cannot be parsed are skipped.
        """
        if limit <= 0 or not self._file_path.exists():
            return []

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read activity log: {e}",
                details={"file_path": str(self._file_path)},
            )

        entries: list[ActivityLogEntry] = []
        for line in reversed(lines):
            entry = self._parse_line(line)
            if entry is None:
                continue
            entries.append(entry)
            if len(entries) >= limit:
                break
        return entries

    @staticmethod
    def _parse_line(line: str) -> Optional[ActivityLogEntry]:
        line = line.strip()
        if not line:
            return None
        try:
            raw = json.loads(line)
            return ActivityLogEntry(
                timestamp=datetime.fromisoformat(raw["timestamp"]),
                domain=raw["domain"],
                event_kind=raw["event_kind"],
                message=raw["message"],
                details=raw.get("details"),
            )
        except (ValueError, KeyError, TypeError):
            return None
