"""
Event Types for the Behavior Tracking System

Defines the closed set of behavior event types and log kinds as enums so that
every switch point over them can be checked for completeness.
"""

from enum import Enum


class BehaviorType(Enum):
    """Allowed behavior event types."""

    # Navigation
    PAGE_VIEW = "page_view"

    # Content views
    ARTICLE_VIEW = "article_view"
    MOMENT_VIEW = "moment_view"
    WORK_VIEW = "work_view"
    USER_VISIT = "user_visit"

    # Interactions
    COMMENT_CREATE = "comment_create"
    LIKE_ACTION = "like_action"

    @classmethod
    def is_valid(cls, event_type: str) -> bool:
        """Check if an event type string is valid."""
        try:
            cls(event_type)
            return True
        except ValueError:
            return False

    @classmethod
    def get_allowed_types(cls) -> set[str]:
        """Get all allowed event type strings."""
        return {e.value for e in cls}

    @classmethod
    def view_types(cls) -> frozenset["BehaviorType"]:
        """Event types that count towards total views."""
        return frozenset({cls.PAGE_VIEW, cls.ARTICLE_VIEW, cls.MOMENT_VIEW, cls.WORK_VIEW})


class LogKind(Enum):
    """Kinds of date-partitioned event logs."""

    BEHAVIOR = "behavior"
    ERROR = "error"


class ErrorLevel(Enum):
    """Severity of an error event."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"
