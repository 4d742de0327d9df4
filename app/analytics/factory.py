"""
Factory for creating analytics module.
"""
from datetime import datetime
from typing import Callable, Iterable, Optional

from app.database import Database
from app.event_tracking.log_store import EventLogStore
from app.scheduler.services import SchedulerService

from .routes import create_analytics_blueprint
from .services import AnalyticsService


def create_analytics_service(
    database: Database,
    store: EventLogStore,
    batch_size: int = 1000,
    top_n: int = 10,
    clock: Optional[Callable[[], datetime]] = None
) -> AnalyticsService:
    """Create the analytics service, making sure its tables exist."""
    database.create_all()
    return AnalyticsService(database, store, batch_size=batch_size, top_n=top_n, clock=clock)


def create_analytics_module(
    analytics_service: AnalyticsService,
    scheduler: SchedulerService,
    admin_user_ids: Iterable[str],
    log_retention_days: int = 30,
    analytics_retention_days: int = 90
) -> dict:
    """Create analytics module with the admin routes.

    Args:
        analytics_service: Analytics service built by ``create_analytics_service``
        scheduler: Scheduler service used for task status and manual runs
        admin_user_ids: User ids allowed to use the admin routes
        log_retention_days: Default retention of the log cleanup endpoint
        analytics_retention_days: Default retention of the analytics cleanup endpoint

    Returns:
        Dictionary containing the service and blueprint
    """
    blueprint = create_analytics_blueprint(
        analytics_service=analytics_service,
        store=analytics_service.store,
        scheduler=scheduler,
        admin_user_ids=admin_user_ids,
        log_retention_days=log_retention_days,
        analytics_retention_days=analytics_retention_days
    )

    return {
        "service": analytics_service,
        "blueprint": blueprint
    }
