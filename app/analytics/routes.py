"""
Analytics Routes

Admin-only Flask routes for querying analytics, inspecting the scheduler and
triggering processing or cleanup by hand.
"""

import logging
from functools import wraps
from typing import Callable, Iterable, Optional

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from app.event_tracking.event_types import BehaviorType, LogKind
from app.event_tracking.log_store import EventLogStore, parse_date
from app.scheduler.models import JobAlreadyRunningError
from app.scheduler.services import SchedulerService

from .models import CleanupRequest, ReportRequest
from .services import AnalyticsService

logger = logging.getLogger(__name__)


def create_analytics_blueprint(
    analytics_service: AnalyticsService,
    store: EventLogStore,
    scheduler: SchedulerService,
    admin_user_ids: Iterable[str],
    log_retention_days: int = 30,
    analytics_retention_days: int = 90
) -> Blueprint:
    """Create analytics admin blueprint with routes.

    Args:
        analytics_service: The analytics service instance
        store: Event log store, for log listing and cleanup
        scheduler: Scheduler service, for task status and manual runs
        admin_user_ids: User ids allowed to use these routes
        log_retention_days: Default retention of the log cleanup endpoint
        analytics_retention_days: Default retention of the analytics cleanup endpoint

    Returns:
        Flask blueprint with analytics routes
    """
    blueprint = Blueprint('analytics', __name__, url_prefix='/stats')
    admins = set(admin_user_ids)

    def admin_required(f: Callable) -> Callable:
        """Decorator to require admin access."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = request.cookies.get('uid')
            if not user_id:
                return jsonify({'error': 'Please log in to access analytics.'}), 401
            if user_id not in admins:
                return jsonify({'error': 'Admin access required to view analytics.'}), 403
            return f(*args, **kwargs)
        return decorated_function

    def _date_arg(name: str, default: Optional[str] = None) -> Optional[str]:
        value = request.args.get(name)
        if not value:
            return default
        return parse_date(value)

    def _type_arg(default: str = BehaviorType.ARTICLE_VIEW.value) -> BehaviorType:
        return BehaviorType(request.args.get('type', default))

    def _json_body() -> dict:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    @blueprint.errorhandler(ValueError)
    def handle_bad_input(e):
        return jsonify({'error': str(e)}), 400

    @blueprint.route('/api/daily', methods=['GET'])
    @admin_required
    def api_daily_stats():
        """Most recent daily stats rows, newest first."""
        limit = request.args.get('limit', 30, type=int)
        rows = analytics_service.get_daily_stats(_date_arg('start'), _date_arg('end'), limit)
        return jsonify(rows)

    @blueprint.route('/api/statistics', methods=['GET'])
    @admin_required
    def api_statistics():
        """Daily stats rows of a date range, oldest first."""
        start = _date_arg('start')
        end = _date_arg('end')
        if not start or not end:
            return jsonify({'error': 'start and end are required'}), 400
        return jsonify(analytics_service.get_statistics(start, end))

    @blueprint.route('/api/summary', methods=['GET'])
    @admin_required
    def api_summary():
        summary = analytics_service.get_stats_summary(_date_arg('start'), _date_arg('end'))
        return jsonify(summary.to_dict())

    @blueprint.route('/api/top', methods=['GET'])
    @admin_required
    def api_top_content():
        """Most viewed targets of one type on one date (default yesterday)."""
        date = _date_arg('date', scheduler.yesterday())
        limit = request.args.get('limit', 10, type=int)
        top = analytics_service.get_top_content(date, _type_arg(), limit)
        return jsonify([item.to_dict() for item in top])

    @blueprint.route('/api/top-targets', methods=['GET'])
    @admin_required
    def api_top_targets():
        """Most viewed targets of one type over a date range."""
        limit = request.args.get('limit', 10, type=int)
        top = analytics_service.get_top_targets(_type_arg(), _date_arg('start'), _date_arg('end'), limit)
        return jsonify([item.to_dict() for item in top])

    @blueprint.route('/api/live', methods=['GET'])
    @admin_required
    def api_live_statistics():
        """Rollup computed straight from a day's log (default today), not persisted."""
        date = _date_arg('date', store.today())
        statistics = analytics_service.compute_daily_statistics(date)
        return jsonify({'date': date, 'statistics': statistics.to_dict() if statistics else None})

    @blueprint.route('/api/report', methods=['POST'])
    @admin_required
    def api_custom_report():
        try:
            options = ReportRequest.model_validate(_json_body())
            parse_date(options.start_date)
            parse_date(options.end_date)
        except ValidationError as e:
            return _invalid(e, 'invalid-report-request')
        return jsonify(analytics_service.generate_custom_report(options))

    @blueprint.route('/api/log-dates', methods=['GET'])
    @admin_required
    def api_log_dates():
        kind = LogKind(request.args.get('kind', LogKind.BEHAVIOR.value))
        return jsonify({'kind': kind.value, 'dates': store.list_dates(kind)})

    @blueprint.route('/api/tasks', methods=['GET'])
    @admin_required
    def api_task_status():
        return jsonify([status.to_dict() for status in scheduler.get_task_status()])

    @blueprint.route('/api/tasks/<name>/restart', methods=['POST'])
    @admin_required
    def api_restart_task(name: str):
        if not scheduler.restart_task(name):
            return jsonify({'error': f'Unknown task: {name}'}), 404
        return jsonify({'status': 'restarted', 'task': name})

    def _process(run: Callable):
        try:
            result = run()
        except JobAlreadyRunningError as e:
            return jsonify({'error': str(e)}), 409
        except ValueError:
            raise
        except Exception as e:
            logger.exception(f"Manual analytics run failed: {e}")
            return jsonify({'error': 'processing-failed', 'message': str(e)}), 500
        return jsonify(result.to_dict())

    @blueprint.route('/api/process', methods=['POST'])
    @admin_required
    def api_process_date():
        """Process one date by hand (JSON body ``{"date": "YYYY-MM-DD"}``)."""
        date = _json_body().get('date') or request.args.get('date')
        if not date:
            return jsonify({'error': 'date is required'}), 400
        date = parse_date(date)
        return _process(lambda: scheduler.run_analytics_for_date(date))

    @blueprint.route('/api/process/yesterday', methods=['POST'])
    @admin_required
    def api_process_yesterday():
        return _process(scheduler.run_yesterday_analytics)

    def _invalid(error: ValidationError, code: str):
        return jsonify({'error': code, 'details': error.errors(include_url=False, include_context=False)}), 400

    def _retention_days(default: int) -> int:
        """Retention from the JSON body (``retentionDays``), or the configured default.

        Raises:
            ValidationError: If the value is not a non-negative integer
        """
        options = CleanupRequest.model_validate(_json_body())
        return default if options.retention_days is None else options.retention_days

    @blueprint.route('/api/cleanup/logs', methods=['POST'])
    @admin_required
    def api_cleanup_logs():
        try:
            retention_days = _retention_days(log_retention_days)
        except ValidationError as e:
            return _invalid(e, 'invalid-cleanup-request')
        deleted = store.cleanup(None, retention_days)
        return jsonify({'retentionDays': retention_days, 'deleted': deleted})

    @blueprint.route('/api/cleanup/analytics', methods=['POST'])
    @admin_required
    def api_cleanup_analytics():
        try:
            retention_days = _retention_days(analytics_retention_days)
        except ValidationError as e:
            return _invalid(e, 'invalid-cleanup-request')
        try:
            deleted = analytics_service.cleanup_old_analytics(retention_days)
        except Exception as e:
            logger.exception(f"Analytics cleanup failed: {e}")
            return jsonify({'error': 'cleanup-failed', 'message': str(e)}), 500
        return jsonify({'retentionDays': retention_days, 'deleted': deleted})

    return blueprint
