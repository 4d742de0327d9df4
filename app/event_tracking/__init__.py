"""
Event Tracking Subsystem

Records visitor behavior as append-only, date-partitioned JSON-lines logs.
"""

from .event_tracker import BehaviorTracker
from .event_types import BehaviorType, ErrorLevel, LogKind
from .log_store import EventLogStore
from .models import BehaviorEvent, ErrorEvent, EventPayload

__all__ = [
    'BehaviorTracker',
    'BehaviorType',
    'ErrorLevel',
    'LogKind',
    'EventLogStore',
    'BehaviorEvent',
    'ErrorEvent',
    'EventPayload',
]
