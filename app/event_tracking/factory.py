"""
Factory for creating event tracking module.
"""
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Callable, Optional

from .event_tracker import BehaviorTracker
from .geo import GeoResolver
from .log_store import EventLogStore
from .routes import create_event_tracking_blueprint


def create_event_tracking_module(
    log_dir: Path,
    tz: tzinfo,
    session_cookie: str = "session_id",
    geo_resolver: Optional[GeoResolver] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> dict:
    """Create event tracking module with store, tracker and routes.

    Args:
        log_dir: Directory for the behavior and error log files
        tz: Timezone deciding the calendar date of each log file
        session_cookie: Name of the visitor session cookie
        geo_resolver: Optional IP -> country/city resolver
        clock: Optional clock used instead of the wall clock

    Returns:
        Dictionary containing the store, the tracker service and the blueprint
    """
    store = EventLogStore(log_dir, tz, clock=clock)
    tracker = BehaviorTracker(store, session_cookie=session_cookie, geo_resolver=geo_resolver)
    blueprint = create_event_tracking_blueprint(tracker)

    return {
        "store": store,
        "service": tracker,
        "blueprint": blueprint
    }
