import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo

# Import configuration management
sys.path.append(str(Path(__file__).parent.parent))
from config_manager import ConfigManager

from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from app.analytics.factory import create_analytics_module, create_analytics_service
from app.database import Database, resolve_database_url
from app.event_tracking.factory import create_event_tracking_module
from app.event_tracking.middleware import register_tracking_hook
from app.logging_config import setup_logging, stop_logging
from app.request_logging import register_request_logging
from app.scheduler.factory import create_scheduler_module

PROJECT_ROOT = Path(__file__).parent.parent
SERVICE_NAME = "content-analytics"


def resolve_path(path: str) -> Path:
    """Resolve a configured path relative to the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def create_app(
    config_manager: Optional[ConfigManager] = None,
    clock: Optional[Callable[[], datetime]] = None,
    configure_logging: bool = True
) -> Flask:
    """Build the Flask application and wire every analytics service.

    The scheduler is created stopped; call ``start_all_tasks`` on
    ``app.extensions["analytics"]["scheduler"]`` to start it.

    Args:
        config_manager: Configuration source; defaults to ``analytics_config.json``
        clock: Optional callable returning the current aware datetime
        configure_logging: Whether to install the process-wide logging handlers
    """
    config_manager = config_manager or ConfigManager()
    app_config = config_manager.get_app_config()
    paths_config = config_manager.get_paths_config()
    db_config = config_manager.get_database_config()
    analytics_config = config_manager.get_analytics_config()

    log_dir = resolve_path(paths_config.log_dir)
    data_dir = resolve_path(paths_config.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    if configure_logging:
        setup_logging(debug=app_config.debug, log_file=log_dir / "app.log")

    tz = ZoneInfo(analytics_config.timezone)

    app = Flask(__name__)
    app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_proto = 1,     # trust 1 hop for X-Forwarded-Proto
            x_host  = 1,     # trust 1 hop for X-Forwarded-Host
            x_prefix= 1)     # trust 1 hop for X-Forwarded-Prefix

    # Relative SQLite paths live in the data directory
    database = Database(resolve_database_url(db_config.url, data_dir), echo=db_config.echo)

    # Initialize event tracking module
    event_tracking_module = create_event_tracking_module(
        log_dir=log_dir,
        tz=tz,
        session_cookie=analytics_config.session_cookie,
        clock=clock
    )
    store = event_tracking_module["store"]
    tracker = event_tracking_module["service"]

    # Initialize analytics service and scheduler
    analytics_service = create_analytics_service(
        database=database,
        store=store,
        batch_size=analytics_config.batch_size,
        top_n=analytics_config.top_n,
        clock=clock
    )
    scheduler_module = create_scheduler_module(
        analytics_service=analytics_service,
        store=store,
        tz=tz,
        log_retention_days=analytics_config.log_retention_days,
        analytics_retention_days=analytics_config.analytics_retention_days,
        clock=clock
    )
    scheduler = scheduler_module["service"]

    analytics_module = create_analytics_module(
        analytics_service=analytics_service,
        scheduler=scheduler,
        admin_user_ids=app_config.admin_user_ids,
        log_retention_days=analytics_config.log_retention_days,
        analytics_retention_days=analytics_config.analytics_retention_days
    )

    register_request_logging(app, store, session_cookie=analytics_config.session_cookie)
    register_tracking_hook(app, tracker)
    app.register_blueprint(event_tracking_module["blueprint"])
    app.register_blueprint(analytics_module["blueprint"])

    app.extensions["analytics"] = {
        "config": config_manager,
        "database": database,
        "store": store,
        "tracker": tracker,
        "analytics_service": analytics_service,
        "scheduler": scheduler,
    }

    @app.get("/actuator/health")
    def actuator_health():
        """Health check endpoint for monitoring tools and cloud platforms."""
        return jsonify({
            "status": "UP",
            "service": SERVICE_NAME
        }), 200

    return app


def main(argv: Optional[list] = None) -> int:
    """Run the analytics backend with its scheduler."""
    parser = argparse.ArgumentParser(description="Behavior analytics backend")
    parser.add_argument("--port", type=int, help="Port to run the server on")
    parser.add_argument("--host", type=str, help="Host to bind the server to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--config", type=str, default="analytics_config.json", help="Configuration file")
    parser.add_argument("--no-scheduler", action="store_true", help="Do not start the scheduled jobs")
    args = parser.parse_args(argv)

    config_manager = ConfigManager(args.config)
    app_config = config_manager.get_app_config()
    analytics_config = config_manager.get_analytics_config()

    # Override configuration with command line arguments
    if args.port:
        app_config.port = args.port
    if args.host:
        app_config.host = args.host
    if args.debug:
        app_config.debug = args.debug

    app = create_app(config_manager)
    services = app.extensions["analytics"]
    scheduler = services["scheduler"]

    if analytics_config.scheduler_enabled and not args.no_scheduler:
        scheduler.start_all_tasks()

    print(f"✅ Writing behavior logs to {services['store'].log_dir.resolve()}")
    print(f"📋 Configuration loaded:")
    print(f"   - Database: {services['database'].url}")
    print(f"   - Timezone: {analytics_config.timezone}")
    print(f"   - Scheduler: {'on' if scheduler.get_task_status()[0].running else 'off'}")
    print(f"   - Server: {app_config.host}:{app_config.port}")
    try:
        # The reloader would start a second scheduler
        app.run(
            host=app_config.host,
            port=app_config.port,
            debug=app_config.debug,
            use_reloader=False
        )
    finally:
        scheduler.stop_all_tasks()
        services["database"].dispose()
        stop_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
