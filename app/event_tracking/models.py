"""
Data Models for Behavior Tracking

Defines the records written to the behavior and error event logs, and the
payload accepted from the frontend. Records are serialized with the camelCase
keys used by the log file format.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .event_types import BehaviorType, ErrorLevel

# Request context shared by behavior and error events: attribute -> JSON key
_CONTEXT_FIELDS = {
    "user_id": "userId",
    "session_id": "sessionId",
    "ip_address": "ipAddress",
    "user_agent": "userAgent",
    "referer": "referer",
    "country": "country",
    "city": "city",
    "device": "device",
    "browser": "browser",
    "os": "os",
}


def _scalar_str(data: Dict[str, Any], key: str) -> Optional[str]:
    """Read an optional text field; numbers are stringified, other types rejected.

    Raises:
        ValueError: If the field holds a list, object or boolean
    """
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"Field {key} must be a string, got {type(value).__name__}")


@dataclass
class EventPayload:
    """Payload structure for incoming events from frontend."""

    type: str
    target_id: Optional[str] = None
    target_title: Optional[str] = None
    duration: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> bool:
        """Validate the payload structure."""
        return (
            isinstance(self.type, str) and
            (self.target_id is None or isinstance(self.target_id, str)) and
            (self.target_title is None or isinstance(self.target_title, str)) and
            (self.duration is None or (
                isinstance(self.duration, (int, float))
                and not isinstance(self.duration, bool)
                and self.duration >= 0
            )) and
            isinstance(self.extra, dict)
        )


@dataclass
class BehaviorEvent:
    """One recorded visitor action, immutable once written."""

    type: BehaviorType
    session_id: str
    ip_address: str
    user_agent: str
    timestamp: Optional[str] = None
    target_id: Optional[str] = None
    target_title: Optional[str] = None
    user_id: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    duration: Optional[float] = None
    extra: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization, dropping empty optionals."""
        data = {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "targetId": self.target_id,
            "targetTitle": self.target_title,
            "userId": self.user_id,
            "sessionId": self.session_id,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "referer": self.referer,
            "country": self.country,
            "city": self.city,
            "device": self.device,
            "browser": self.browser,
            "os": self.os,
            "duration": self.duration,
            "extra": self.extra,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BehaviorEvent':
        """Create BehaviorEvent from a log record.

        Raises:
            ValueError: If the record carries an unknown event type or a
                field of the wrong type
        """
        duration = data.get("duration")
        if duration is not None and (isinstance(duration, bool) or not isinstance(duration, (int, float))):
            raise ValueError(f"Field duration must be a number, got {type(duration).__name__}")
        extra = data.get("extra")
        if extra is not None and not isinstance(extra, dict):
            raise ValueError(f"Field extra must be an object, got {type(extra).__name__}")

        return cls(
            timestamp=_scalar_str(data, "timestamp"),
            type=BehaviorType(_scalar_str(data, "type")),
            session_id=_scalar_str(data, "sessionId") or "",
            ip_address=_scalar_str(data, "ipAddress") or "",
            user_agent=_scalar_str(data, "userAgent") or "",
            target_id=_scalar_str(data, "targetId"),
            target_title=_scalar_str(data, "targetTitle"),
            user_id=_scalar_str(data, "userId"),
            referer=_scalar_str(data, "referer"),
            country=_scalar_str(data, "country"),
            city=_scalar_str(data, "city"),
            device=_scalar_str(data, "device"),
            browser=_scalar_str(data, "browser"),
            os=_scalar_str(data, "os"),
            duration=duration,
            extra=extra,
        )


@dataclass
class ErrorEvent:
    """Operational diagnostic record; never aggregated."""

    level: ErrorLevel
    message: str
    timestamp: Optional[str] = None
    stack: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    status_code: Optional[int] = None
    extra: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization, dropping empty optionals."""
        data: Dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
            "stack": self.stack,
        }
        for attr, key in _CONTEXT_FIELDS.items():
            data[key] = getattr(self, attr)
        data["url"] = self.url
        data["method"] = self.method
        data["statusCode"] = self.status_code
        data["extra"] = self.extra
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ErrorEvent':
        """Create ErrorEvent from a log record."""
        context = {attr: data.get(key) for attr, key in _CONTEXT_FIELDS.items()}
        return cls(
            timestamp=data.get("timestamp"),
            level=ErrorLevel(data.get("level", "error")),
            message=data.get("message", ""),
            stack=data.get("stack"),
            url=data.get("url"),
            method=data.get("method"),
            status_code=data.get("statusCode"),
            extra=data.get("extra"),
            **context,
        )
