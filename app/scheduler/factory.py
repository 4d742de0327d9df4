"""
Factory for creating scheduler module.
"""
from datetime import datetime, tzinfo
from typing import Callable, Optional

from app.analytics.services import AnalyticsService
from app.event_tracking.log_store import EventLogStore

from .services import SchedulerService


def create_scheduler_module(
    analytics_service: AnalyticsService,
    store: EventLogStore,
    tz: tzinfo,
    log_retention_days: int = 30,
    analytics_retention_days: int = 90,
    clock: Optional[Callable[[], datetime]] = None
) -> dict:
    """Create scheduler module. Jobs stay stopped until ``start_all_tasks``.

    Returns:
        Dictionary containing the scheduler service
    """
    scheduler = SchedulerService(
        analytics_service=analytics_service,
        store=store,
        tz=tz,
        log_retention_days=log_retention_days,
        analytics_retention_days=analytics_retention_days,
        clock=clock
    )

    return {
        "service": scheduler
    }
