"""
Request logging and unhandled error reporting.

Every request is logged on arrival and again with its status and duration.
Slow requests and error responses are logged as warnings. Exceptions no view
handled become a JSON 500 response and an error event in the log store.
"""

import logging
import time
import traceback
from datetime import datetime, timezone

from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.event_tracking.event_tracker import get_client_ip
from app.event_tracking.event_types import ErrorLevel
from app.event_tracking.log_store import EventLogStore
from app.event_tracking.models import ErrorEvent

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000


def _request_url() -> str:
    return request.full_path.rstrip("?")


def register_request_logging(
    app: Flask,
    store: EventLogStore,
    session_cookie: str = "session_id",
    slow_request_ms: int = SLOW_REQUEST_MS
) -> None:
    """Install request logging and the unhandled-exception handler on a Flask app.

    Args:
        app: The Flask application
        store: Event log store receiving error events for unhandled exceptions
        session_cookie: Name of the cookie carrying the visitor session id
        slow_request_ms: Duration above which a request is logged as slow
    """

    @app.before_request
    def _log_request_start():
        g.request_started_at = time.perf_counter()
        logger.info(
            f"Incoming request: {request.method} {_request_url()} "
            f"- IP: {get_client_ip(request)} - UA: {request.headers.get('User-Agent', '')}"
        )

    @app.after_request
    def _log_request_end(response: Response) -> Response:
        started = g.get("request_started_at")
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started is not None else 0
        status = response.status_code
        logger.info(f"{request.method} {_request_url()} {status} - {elapsed_ms}ms")

        if elapsed_ms > slow_request_ms:
            logger.warning(
                f"Slow request: {request.method} {_request_url()} took {elapsed_ms}ms "
                f"(threshold {slow_request_ms}ms)"
            )
        if status >= 400:
            logger.warning(
                f"Error response: {request.method} {_request_url()} - {status} "
                f"- IP: {get_client_ip(request)} - user: {request.cookies.get('uid')}"
            )
        return response

    @app.errorhandler(Exception)
    def _handle_unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return e

        logger.exception(f"Server Error: {request.method} {_request_url()} - 500")
        store.log_error(ErrorEvent(
            level=ErrorLevel.ERROR,
            message=f"Server Error: {request.method} {_request_url()} - 500: {e}",
            stack="".join(traceback.format_exception(type(e), e, e.__traceback__)),
            user_id=request.cookies.get("uid"),
            session_id=request.cookies.get(session_cookie),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent") or None,
            url=_request_url(),
            method=request.method,
            status_code=500,
        ))
        return jsonify({
            "statusCode": 500,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": _request_url(),
            "method": request.method,
            "message": "Internal server error",
        }), 500
