#!/usr/bin/env python3
"""
Analytics management script for operators:
- process one day of behavior logs, or backfill a range of days
- clean up old log files and old analytics rows
- list log dates and show the statistics of a day

Uses the same configuration and services as the web application.
"""

import json
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional
import argparse
import logging

from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).parent))
from config_manager import ConfigManager
from app.event_tracking.event_types import LogKind
from app.event_tracking.log_store import parse_date
from app.main import create_app

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def date_range(start: str, end: str) -> List[str]:
    """All dates from start to end, inclusive."""
    first = date.fromisoformat(parse_date(start))
    last = date.fromisoformat(parse_date(end))
    if last < first:
        raise ValueError(f"End date {end} is before start date {start}")
    return [(first + timedelta(days=offset)).isoformat() for offset in range((last - first).days + 1)]


class AnalyticsManager:
    """Runs analytics maintenance tasks outside the web server."""

    def __init__(self, config_manager: ConfigManager):
        app = create_app(config_manager, configure_logging=False)
        services = app.extensions["analytics"]
        self.analytics_config = config_manager.get_analytics_config()
        self.store = services["store"]
        self.analytics_service = services["analytics_service"]
        self.scheduler = services["scheduler"]

    def process(self, day: str) -> Dict[str, Any]:
        """Process one day of behavior logs."""
        result = self.scheduler.run_analytics_for_date(day)
        return result.to_dict()

    def backfill(self, start: str, end: str) -> Dict[str, Any]:
        """Process every day of a range; a failing day does not stop the rest."""
        processed = []
        failed = []
        for day in tqdm(date_range(start, end), desc="Backfilling analytics"):
            try:
                result = self.scheduler.run_analytics_for_date(day)
                processed.append({"date": day, "events": result.events_read, "hasData": result.has_data})
            except Exception as e:
                logger.error(f"Failed to process {day}: {e}")
                failed.append({"date": day, "error": str(e)})

        logger.info(f"Backfill complete: {len(processed)} processed, {len(failed)} failed")
        return {"processed": processed, "failed": failed}

    def cleanup_logs(self, retention_days: Optional[int] = None) -> Dict[str, Any]:
        retention_days = retention_days if retention_days is not None else self.analytics_config.log_retention_days
        deleted = self.store.cleanup(None, retention_days)
        return {"retentionDays": retention_days, "deleted": deleted}

    def cleanup_analytics(self, retention_days: Optional[int] = None) -> Dict[str, Any]:
        retention_days = retention_days if retention_days is not None else self.analytics_config.analytics_retention_days
        deleted = self.analytics_service.cleanup_old_analytics(retention_days)
        return {"retentionDays": retention_days, "deleted": deleted}

    def list_dates(self, kind: LogKind) -> List[str]:
        return self.store.list_dates(kind)

    def stats(self, day: str) -> Dict[str, Any]:
        """Statistics of a day computed from its log, next to the persisted row."""
        day = parse_date(day)
        statistics = self.analytics_service.compute_daily_statistics(day)
        persisted = self.analytics_service.get_statistics(day, day)
        return {
            "date": day,
            "live": statistics.to_dict() if statistics else None,
            "persisted": persisted[0] if persisted else None
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analytics management script")
    parser.add_argument("--config", type=str, default="analytics_config.json",
                       help="Configuration file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    process_parser = subparsers.add_parser("process", help="Process one day of behavior logs")
    process_parser.add_argument("date", help="Date to process (YYYY-MM-DD)")

    backfill_parser = subparsers.add_parser("backfill", help="Process a range of days")
    backfill_parser.add_argument("start", help="First date (YYYY-MM-DD)")
    backfill_parser.add_argument("end", help="Last date, inclusive (YYYY-MM-DD)")

    logs_parser = subparsers.add_parser("cleanup-logs", help="Delete old log files")
    logs_parser.add_argument("--retention-days", type=int, help="Days of logs to keep")

    analytics_parser = subparsers.add_parser("cleanup-analytics", help="Delete old analytics rows")
    analytics_parser.add_argument("--retention-days", type=int, help="Days of analytics to keep")

    dates_parser = subparsers.add_parser("dates", help="List dates that have log files")
    dates_parser.add_argument("--kind", choices=[k.value for k in LogKind], default=LogKind.BEHAVIOR.value,
                             help="Log kind")

    stats_parser = subparsers.add_parser("stats", help="Show the statistics of a day")
    stats_parser.add_argument("date", help="Date (YYYY-MM-DD)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    manager = AnalyticsManager(ConfigManager(args.config))

    try:
        if args.command == "process":
            output = manager.process(args.date)
        elif args.command == "backfill":
            output = manager.backfill(args.start, args.end)
        elif args.command == "cleanup-logs":
            output = manager.cleanup_logs(args.retention_days)
        elif args.command == "cleanup-analytics":
            output = manager.cleanup_analytics(args.retention_days)
        elif args.command == "dates":
            output = manager.list_dates(LogKind(args.kind))
        else:
            output = manager.stats(args.date)
    except ValueError as e:
        logger.error(str(e))
        return 2

    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
