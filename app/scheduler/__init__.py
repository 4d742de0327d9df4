"""
Scheduler for the daily analytics and retention cleanup jobs.
"""

from .models import (
    ANALYTICS_CLEANUP,
    DAILY_ANALYTICS,
    LOG_CLEANUP,
    CalendarSchedule,
    JobAlreadyRunningError,
    JobState,
    JobStatus,
)
from .services import SchedulerService

__all__ = [
    "ANALYTICS_CLEANUP",
    "DAILY_ANALYTICS",
    "LOG_CLEANUP",
    "CalendarSchedule",
    "JobAlreadyRunningError",
    "JobState",
    "JobStatus",
    "SchedulerService",
]
