"""
Behavior Tracker

Turns an inbound HTTP request (plus an optional content target) into a
BehaviorEvent and hands it to the event log store.
"""

import logging
import secrets
import string
import time
import traceback
from typing import Any, Dict, Optional

from werkzeug.wrappers import Request

from .event_types import BehaviorType, ErrorLevel
from .geo import GeoResolver, NullGeoResolver
from .log_store import EventLogStore
from .models import BehaviorEvent, ErrorEvent, EventPayload
from .user_agent import parse_user_agent

logger = logging.getLogger(__name__)

# Checked in order; the first header present wins
IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP")
DEFAULT_IP = "127.0.0.1"

_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id() -> str:
    """Create a session id of the form ``sess_<epoch ms>_<9 random chars>``."""
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"sess_{int(time.time() * 1000)}_{suffix}"


def get_client_ip(request: Request) -> str:
    """Get client IP address, honouring proxy headers."""
    for header in IP_HEADERS:
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For is "client, proxy1, proxy2"
            first = value.split(",")[0].strip()
            if first:
                return first
    return request.remote_addr or DEFAULT_IP


class BehaviorTracker:
    """Records visitor behavior events."""

    def __init__(
        self,
        store: EventLogStore,
        session_cookie: str = "session_id",
        geo_resolver: Optional[GeoResolver] = None
    ):
        """Initialize the tracker.

        Args:
            store: Event log store receiving the behavior events
            session_cookie: Name of the cookie carrying the visitor session id
            geo_resolver: Optional IP -> country/city resolver
        """
        self.store = store
        self.session_cookie = session_cookie
        self.geo_resolver = geo_resolver or NullGeoResolver()

    def get_client_ip(self, request: Request) -> str:
        """Get client IP address, honouring proxy headers."""
        return get_client_ip(request)

    def get_session_id(self, request: Request) -> str:
        """Session id from the cookie, or a fresh one.

        A client without the cookie gets a new session on every request, so
        cookie-less traffic inflates unique visitor counts.
        """
        return request.cookies.get(self.session_cookie) or generate_session_id()

    def track(
        self,
        request: Request,
        event_type: BehaviorType,
        target_id: Optional[str] = None,
        target_title: Optional[str] = None,
        user_id: Optional[str] = None,
        duration: Optional[float] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> None:
        """Record one behavior event for a request.

        Never raises: a tracking failure must not abort the host request.
        """
        try:
            user_agent = request.headers.get("User-Agent", "")
            ip_address = self.get_client_ip(request)
            device_info = parse_user_agent(user_agent)
            geo_info = self.geo_resolver.resolve(ip_address)

            event = BehaviorEvent(
                type=event_type,
                target_id=target_id,
                target_title=target_title,
                user_id=user_id,
                session_id=self.get_session_id(request),
                ip_address=ip_address,
                user_agent=user_agent,
                referer=request.headers.get("Referer") or None,
                country=geo_info.country,
                city=geo_info.city,
                device=device_info.device,
                browser=device_info.browser,
                os=device_info.os,
                duration=duration,
                extra=extra or None,
            )
            self.store.log_behavior(event)
        except Exception:
            logger.warning(f"Behavior tracking failed for {event_type.value}", exc_info=True)
            self.report_failure(request, event_type.value)

    def report_failure(self, request: Request, action: str) -> None:
        """Write the exception being handled to the error log, with its request context."""
        self.store.log_error(ErrorEvent(
            level=ErrorLevel.ERROR,
            message=f"Behavior tracking failed: {action}",
            stack=traceback.format_exc(),
            session_id=request.cookies.get(self.session_cookie),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent") or None,
            url=request.path,
            method=request.method,
        ))

    def track_page_view(
        self,
        request: Request,
        target_id: Optional[str] = None,
        target_title: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> None:
        """Record a page view."""
        self.track(request, BehaviorType.PAGE_VIEW, target_id, target_title, user_id)

    def track_article_view(
        self,
        request: Request,
        article_id: str,
        article_title: str,
        user_id: Optional[str] = None
    ) -> None:
        """Record an article view."""
        self.track(request, BehaviorType.ARTICLE_VIEW, article_id, article_title, user_id)

    def track_moment_view(self, request: Request, moment_id: str, user_id: Optional[str] = None) -> None:
        """Record a moment view. Moments have no title."""
        self.track(request, BehaviorType.MOMENT_VIEW, moment_id, None, user_id)

    def track_work_view(
        self,
        request: Request,
        work_id: str,
        work_title: str,
        user_id: Optional[str] = None
    ) -> None:
        """Record a portfolio work view."""
        self.track(request, BehaviorType.WORK_VIEW, work_id, work_title, user_id)

    def track_user_visit(self, request: Request, user_id: Optional[str] = None) -> None:
        """Record a visit to a user's profile."""
        self.track(request, BehaviorType.USER_VISIT, user_id=user_id)

    def track_comment_create(
        self,
        request: Request,
        target_type: str,
        target_id: str,
        user_id: Optional[str] = None
    ) -> None:
        """Record a new comment on some content."""
        self.track(
            request,
            BehaviorType.COMMENT_CREATE,
            target_id=target_id,
            user_id=user_id,
            extra={"targetType": target_type}
        )

    def track_like_action(
        self,
        request: Request,
        target_type: str,
        target_id: str,
        action: str,
        user_id: Optional[str] = None
    ) -> None:
        """Record a like or unlike.

        Args:
            action: Either "like" or "unlike"
        """
        self.track(
            request,
            BehaviorType.LIKE_ACTION,
            target_id=target_id,
            user_id=user_id,
            extra={"targetType": target_type, "action": action}
        )

    def process_event_payload(self, request: Request, payload: EventPayload, user_id: Optional[str] = None) -> bool:
        """Record an event reported by the frontend.

        Returns:
            True if the payload was valid and handed to the store, False otherwise
        """
        if not payload.validate():
            return False

        if not BehaviorType.is_valid(payload.type):
            return False

        self.track(
            request,
            BehaviorType(payload.type),
            target_id=payload.target_id,
            target_title=payload.target_title,
            user_id=user_id,
            duration=payload.duration,
            extra=payload.extra
        )
        return True
