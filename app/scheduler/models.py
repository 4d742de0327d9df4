"""
Scheduler data models.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any, Dict, Optional

DAILY_ANALYTICS = "daily-analytics"
LOG_CLEANUP = "log-cleanup"
ANALYTICS_CLEANUP = "analytics-cleanup"

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class JobState(Enum):
    """Lifecycle state of a named job."""
    STOPPED = "stopped"
    SCHEDULED = "scheduled"


class JobAlreadyRunningError(RuntimeError):
    """Raised when the same job (or the same date) is already being processed."""

    def __init__(self, key: str):
        super().__init__(f"Job already running: {key}")
        self.key = key


@dataclass(frozen=True)
class CalendarSchedule:
    """A fixed time of day, optionally restricted to a weekday or a day of month.

    ``weekday`` follows ``date.weekday()`` (Monday is 0, Sunday is 6).
    """
    hour: int
    minute: int
    tz: tzinfo
    weekday: Optional[int] = None
    day_of_month: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid time of day: {self.hour}:{self.minute}")
        if self.weekday is not None and not 0 <= self.weekday <= 6:
            raise ValueError(f"Invalid weekday: {self.weekday}")
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise ValueError(f"Invalid day of month: {self.day_of_month}")
        if self.weekday is not None and self.day_of_month is not None:
            raise ValueError("A schedule takes a weekday or a day of month, not both")

    def _matches(self, day) -> bool:
        if self.weekday is not None and day.weekday() != self.weekday:
            return False
        if self.day_of_month is not None and day.day != self.day_of_month:
            return False
        return True

    def next_fire_after(self, moment: datetime) -> datetime:
        """First firing time strictly after ``moment`` (an aware datetime)."""
        local = moment.astimezone(self.tz)
        # 31st of the month recurs within at most 62 days
        for offset in range(0, 400):
            day = local.date() + timedelta(days=offset)
            if not self._matches(day):
                continue
            candidate = datetime.combine(day, time(self.hour, self.minute), tzinfo=self.tz)
            if candidate > local:
                return candidate
        raise ValueError(f"Schedule never fires: {self.describe()}")

    def describe(self) -> str:
        """Human readable form, e.g. ``weekly on Sunday at 02:00 (Asia/Shanghai)``."""
        at = f"{self.hour:02d}:{self.minute:02d}"
        if self.weekday is not None:
            text = f"weekly on {WEEKDAY_NAMES[self.weekday]} at {at}"
        elif self.day_of_month is not None:
            text = f"monthly on day {self.day_of_month} at {at}"
        else:
            text = f"daily at {at}"
        return f"{text} ({getattr(self.tz, 'key', str(self.tz))})"


def default_schedules(tz: tzinfo) -> Dict[str, CalendarSchedule]:
    """Schedules of the three built-in jobs."""
    return {
        DAILY_ANALYTICS: CalendarSchedule(hour=0, minute=0, tz=tz),
        LOG_CLEANUP: CalendarSchedule(hour=2, minute=0, tz=tz, weekday=6),
        ANALYTICS_CLEANUP: CalendarSchedule(hour=3, minute=0, tz=tz, day_of_month=1),
    }


@dataclass
class JobStatus:
    """Snapshot of one job for status reporting."""
    name: str
    state: JobState
    schedule: str
    executing: bool = False
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    last_outcome: Optional[str] = None  # 'success', 'failed', 'skipped'
    last_error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def running(self) -> bool:
        """Whether the job is scheduled."""
        return self.state is JobState.SCHEDULED

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'running': self.running,
            'state': self.state.value,
            'schedule': self.schedule,
            'executing': self.executing,
            'nextRunAt': self.next_run_at.isoformat() if self.next_run_at else None,
            'lastRunAt': self.last_run_at.isoformat() if self.last_run_at else None,
            'lastOutcome': self.last_outcome,
            'lastError': self.last_error,
            'details': self.details,
        }
