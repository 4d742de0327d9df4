"""
Request tracking hook.

Maps successful requests to behavior events by path. The hook runs after the
view has produced its response and returns that response untouched.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from flask import Flask, Response, request

from .event_tracker import BehaviorTracker
from .event_types import BehaviorType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingRule:
    """A path pattern and the behavior it records."""
    pattern: re.Pattern
    event_type: BehaviorType
    method: str = "GET"
    page: Optional[str] = None


PAGE_RULES = [
    TrackingRule(re.compile(r"^/$"), BehaviorType.PAGE_VIEW, page="home"),
    TrackingRule(re.compile(r"^/articles$"), BehaviorType.PAGE_VIEW, page="articles"),
    TrackingRule(re.compile(r"^/moments$"), BehaviorType.PAGE_VIEW, page="moments"),
    TrackingRule(re.compile(r"^/works$"), BehaviorType.PAGE_VIEW, page="works"),
    TrackingRule(re.compile(r"^/about$"), BehaviorType.PAGE_VIEW, page="about"),
    TrackingRule(re.compile(r"^/contact$"), BehaviorType.PAGE_VIEW, page="contact"),
]

CONTENT_RULES = [
    TrackingRule(re.compile(r"^/api/articles/([^/]+)$"), BehaviorType.ARTICLE_VIEW),
    TrackingRule(re.compile(r"^/api/moments/([^/]+)$"), BehaviorType.MOMENT_VIEW),
    TrackingRule(re.compile(r"^/api/works/([^/]+)$"), BehaviorType.WORK_VIEW),
    TrackingRule(re.compile(r"^/api/users/([^/]+)$"), BehaviorType.USER_VISIT),
]

ACTION_RULES = [
    TrackingRule(re.compile(r"^/api/comments$"), BehaviorType.COMMENT_CREATE, method="POST"),
    TrackingRule(re.compile(r"^/api/likes$"), BehaviorType.LIKE_ACTION, method="POST"),
]

EXCLUDE_PATTERNS = [
    re.compile(r"^/api/admin/"),
    re.compile(r"^/api/health$"),
    re.compile(r"^/actuator/"),
    re.compile(r"^/stats/"),
    re.compile(r"^/_next/"),
    re.compile(r"^/favicon\.ico$"),
    re.compile(r"^/robots\.txt$"),
    re.compile(r"^/sitemap\.xml$"),
    re.compile(r"\.(css|js|png|jpg|jpeg|gif|svg|ico|woff|woff2|ttf|eot)$"),
]


def should_exclude(path: str) -> bool:
    """Check whether a path is never tracked."""
    return any(pattern.search(path) for pattern in EXCLUDE_PATTERNS)


def match_rule(path: str, method: str) -> Optional[tuple]:
    """Find the tracking rule for a request.

    Returns:
        (rule, captured target id or None), or None if nothing matches
    """
    for rule in PAGE_RULES + CONTENT_RULES + ACTION_RULES:
        if rule.method != method:
            continue
        match = rule.pattern.match(path)
        if match:
            target_id = match.group(1) if match.groups() else None
            return rule, target_id
    return None


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _body_str(body: dict, key: str) -> Optional[str]:
    value = body.get(key)
    if value is None or value == "":
        return None
    return str(value)


def track_request(tracker: BehaviorTracker, user_id: Optional[str] = None) -> None:
    """Record the behavior event for the current request, if any rule matches."""
    path = request.path
    if should_exclude(path):
        return

    matched = match_rule(path, request.method)
    if matched is None:
        return
    rule, target_id = matched

    if rule.event_type is BehaviorType.PAGE_VIEW:
        tracker.track_page_view(request, target_title=rule.page, user_id=user_id)
    elif rule.event_type is BehaviorType.ARTICLE_VIEW:
        tracker.track_article_view(request, target_id, f"Article {target_id}", user_id=user_id)
    elif rule.event_type is BehaviorType.MOMENT_VIEW:
        tracker.track_moment_view(request, target_id, user_id=user_id)
    elif rule.event_type is BehaviorType.WORK_VIEW:
        tracker.track_work_view(request, target_id, f"Work {target_id}", user_id=user_id)
    elif rule.event_type is BehaviorType.USER_VISIT:
        tracker.track_user_visit(request, user_id=target_id)
    elif rule.event_type is BehaviorType.COMMENT_CREATE:
        body = _json_body()
        body_target = _body_str(body, "targetId")
        if body_target:
            tracker.track_comment_create(
                request, _body_str(body, "targetType") or "article", body_target, user_id=user_id
            )
    elif rule.event_type is BehaviorType.LIKE_ACTION:
        body = _json_body()
        body_target = _body_str(body, "targetId")
        if body_target:
            tracker.track_like_action(
                request,
                _body_str(body, "targetType") or "article",
                body_target,
                _body_str(body, "action") or "like",
                user_id=user_id
            )
    else:
        logger.debug(f"No tracking handler for {rule.event_type.value}")


def register_tracking_hook(
    app: Flask,
    tracker: BehaviorTracker,
    user_id_getter: Optional[Callable[[], Optional[str]]] = None
) -> None:
    """Install the tracking hook on a Flask app.

    Args:
        app: The Flask application
        tracker: Behavior tracker recording the events
        user_id_getter: Optional callable returning the logged-in user id
    """
    def get_user_id() -> Optional[str]:
        if user_id_getter is not None:
            return user_id_getter()
        return request.cookies.get("uid")

    @app.after_request
    def _track_behavior(response: Response) -> Response:
        if response.status_code >= 400:
            return response
        try:
            track_request(tracker, user_id=get_user_id())
        except Exception:
            logger.warning("Behavior tracking hook failed", exc_info=True)
            tracker.report_failure(request, f"{request.method} {request.path}")
        return response
