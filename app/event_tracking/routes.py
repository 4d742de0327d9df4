"""
Event Tracking Routes

Flask routes for events reported by the frontend (durations, likes, etc.).
"""

import json
import logging

from flask import Blueprint, request, jsonify

from .event_tracker import BehaviorTracker
from .models import EventPayload

logger = logging.getLogger(__name__)


def create_event_tracking_blueprint(tracker: BehaviorTracker) -> Blueprint:
    """Create a Flask blueprint for event tracking routes.

    Args:
        tracker: Behavior tracker that records the events

    Returns:
        Flask blueprint with event tracking routes
    """
    bp = Blueprint('event_tracking', __name__)

    @bp.route("/event", methods=["POST"])
    def ingest_event():
        """Ingest an event from the frontend."""
        payload_data = request.get_json(silent=True)
        if payload_data is None:
            raw = request.get_data(as_text=True) or "{}"
            try:
                payload_data = json.loads(raw)
            except json.JSONDecodeError:
                payload_data = {}
        if not isinstance(payload_data, dict):
            return jsonify({"error": "invalid-payload"}), 400

        payload = EventPayload(
            type=str(payload_data.get("type", "")).strip(),
            target_id=payload_data.get("targetId"),
            target_title=payload_data.get("targetTitle"),
            duration=payload_data.get("duration"),
            extra=payload_data.get("extra") or {}
        )

        accepted = tracker.process_event_payload(request, payload, user_id=request.cookies.get("uid"))
        if not accepted:
            logger.debug(f"Ignored frontend event of type {payload.type!r}")

        # Invalid events are dropped without an error response
        return jsonify({"status": "ok"})

    return bp
