"""
Event Log Store

Append-only, date-partitioned JSON-lines storage for behavior and error
events. Files are named ``{kind}-YYYY-MM-DD.log`` where the date is the
wall-clock write date in the store's timezone.

No operation here raises to the caller: tracking must never fail the request
that triggered it, so I/O errors are logged and treated as no-ops.
"""

import json
import logging
import re
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .event_types import LogKind
from .models import BehaviorEvent, ErrorEvent

logger = logging.getLogger(__name__)

LOG_FILE_PATTERN = re.compile(r"^(behavior|error)-(\d{4}-\d{2}-\d{2})\.log$")


class EventLogStore:
    """Durable append-only storage of timestamped JSON records."""

    def __init__(self, log_dir: Path, tz: tzinfo, clock: Optional[Callable[[], datetime]] = None):
        """Initialize the store.

        Args:
            log_dir: Directory holding the log files
            tz: Timezone that decides which calendar date a write belongs to
            clock: Optional callable returning the current aware datetime
        """
        self.log_dir = log_dir
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._ensure_log_dir()

    def _ensure_log_dir(self) -> bool:
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            return True
        except OSError:
            logger.warning(f"Failed to create log directory {self.log_dir}", exc_info=True)
            return False

    def now(self) -> datetime:
        """Current time in the store's timezone."""
        return self._clock().astimezone(self.tz)

    def today(self) -> str:
        """Today's date string (YYYY-MM-DD) in the store's timezone."""
        return self.now().date().isoformat()

    def log_file(self, kind: LogKind, date_str: str) -> Path:
        """Get the log file path for a kind and date."""
        return self.log_dir / f"{kind.value}-{date_str}.log"

    def append(self, kind: LogKind, record: Dict[str, Any]) -> bool:
        """Append one record as a JSON line to today's file for ``kind``.

        The record is stamped with the write time unless it already carries a
        timestamp.

        Returns:
            True if the line was written, False otherwise
        """
        now = self.now()
        line_record = dict(record)
        if not line_record.get("timestamp"):
            line_record["timestamp"] = now.isoformat(timespec="milliseconds")

        try:
            line = json.dumps(line_record, ensure_ascii=False) + "\n"
        except (TypeError, ValueError):
            logger.warning(f"Dropping unserializable {kind.value} record", exc_info=True)
            return False

        if not self._ensure_log_dir():
            return False

        try:
            with open(self.log_file(kind, now.date().isoformat()), "a", encoding="utf-8") as f:
                f.write(line)
            return True
        except OSError:
            logger.warning(f"Failed to write {kind.value} log", exc_info=True)
            return False

    def log_behavior(self, event: BehaviorEvent) -> bool:
        """Append a behavior event, stamped with the write time."""
        record = event.to_dict()
        record.pop("timestamp", None)
        return self.append(LogKind.BEHAVIOR, record)

    def log_error(self, event: ErrorEvent) -> bool:
        """Append an error event, stamped with the write time."""
        record = event.to_dict()
        record.pop("timestamp", None)
        return self.append(LogKind.ERROR, record)

    def read(self, kind: LogKind, date_str: str) -> List[Dict[str, Any]]:
        """Read all records for a date in append order.

        Missing files yield an empty list. Lines that are not valid JSON
        objects (for example a line truncated by a crash mid-append) are
        skipped one by one.
        """
        path = self.log_file(kind, date_str)
        if not path.exists():
            return []

        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            logger.warning(f"Failed to read log file {path}", exc_info=True)
            return []

        records: List[Dict[str, Any]] = []
        skipped = 0
        for line in content.split("\n"):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if isinstance(record, dict):
                records.append(record)
            else:
                skipped += 1

        if skipped:
            logger.warning(f"Skipped {skipped} malformed line(s) in {path.name}")
        return records

    def list_dates(self, kind: LogKind) -> List[str]:
        """List the dates (YYYY-MM-DD, ascending) that have a log file for ``kind``."""
        try:
            names = [p.name for p in self.log_dir.iterdir() if p.is_file()]
        except OSError:
            logger.warning(f"Failed to list log directory {self.log_dir}", exc_info=True)
            return []

        dates = []
        for name in names:
            match = LOG_FILE_PATTERN.match(name)
            if match and match.group(1) == kind.value:
                dates.append(match.group(2))
        return sorted(dates)

    def cleanup(self, kind: Optional[LogKind] = None, retention_days: int = 30) -> List[str]:
        """Delete log files dated strictly before ``today - retention_days``.

        Dates are compared as fixed-width YYYY-MM-DD strings.

        Args:
            kind: Log kind to clean up, or None for every kind
            retention_days: Number of days to keep

        Returns:
            Names of the deleted files
        """
        cutoff = (self.now().date() - timedelta(days=retention_days)).isoformat()

        try:
            names = [p.name for p in self.log_dir.iterdir() if p.is_file()]
        except OSError:
            logger.warning(f"Failed to list log directory {self.log_dir}", exc_info=True)
            return []

        deleted = []
        for name in sorted(names):
            match = LOG_FILE_PATTERN.match(name)
            if not match:
                continue
            if kind is not None and match.group(1) != kind.value:
                continue
            if match.group(2) < cutoff:
                try:
                    (self.log_dir / name).unlink()
                    deleted.append(name)
                    logger.info(f"Deleted old log file: {name}")
                except OSError:
                    logger.warning(f"Failed to delete log file {name}", exc_info=True)
        return deleted


def parse_date(value: Union[str, date]) -> str:
    """Normalize a date or YYYY-MM-DD string to the log file date format.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value).strip()).isoformat()
