"""
Analytics Service

Turns one day of behavior logs into a daily rollup plus per-event detail rows,
persists both, and answers the admin queries over the persisted data.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func

from app.database import Database
from app.event_tracking.event_types import BehaviorType, LogKind
from app.event_tracking.log_store import EventLogStore
from app.event_tracking.models import BehaviorEvent

from .aggregation import TOP_N, compute_statistics
from .models import DailyStatistics, ProcessingResult, ReportRequest, StatsSummary, TopContent
from .tables import AnalyticsRecord, DailyStatsRow

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000

# Column lengths of AnalyticsRecord string fields
_COLUMN_LIMITS = {
    "target_id": 255,
    "target_title": 255,
    "ip_address": 45,
    "user_agent": 255,
    "referer": 255,
    "country": 100,
    "city": 100,
    "device": 100,
    "browser": 100,
    "os": 100,
}


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value[:limit] if len(value) > limit else value


def utc_naive(moment: datetime) -> datetime:
    """Convert an aware datetime to naive UTC for storage."""
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class AnalyticsService:
    """Service for aggregating behavior logs and querying the results."""

    def __init__(
        self,
        database: Database,
        store: EventLogStore,
        batch_size: int = BATCH_SIZE,
        top_n: int = TOP_N,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize the analytics service.

        Args:
            database: Database holding the analytics and daily_stats tables
            store: Event log store the behavior events are read from
            batch_size: Number of detail rows inserted per transaction
            top_n: Length of the top pages / top articles rankings
            clock: Optional callable returning the current aware datetime
        """
        self.database = database
        self.store = store
        self.batch_size = max(1, batch_size)
        self.top_n = top_n
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def load_events(self, date: str) -> Tuple[List[BehaviorEvent], int]:
        """Read and parse one day's behavior events.

        Returns:
            (events, number of records skipped for an unknown type or malformed fields)
        """
        events = []
        skipped = 0
        for record in self.store.read(LogKind.BEHAVIOR, date):
            try:
                events.append(BehaviorEvent.from_dict(record))
            except (ValueError, TypeError):
                skipped += 1
        if skipped:
            logger.warning(f"Skipped {skipped} behavior record(s) with unknown type or malformed fields on {date}")
        return events, skipped

    def compute_daily_statistics(self, date: str) -> Optional[DailyStatistics]:
        """Compute the rollup of a day straight from its log, without persisting it."""
        events, _ = self.load_events(date)
        if not events:
            return None
        return compute_statistics(events, date, self.top_n)

    def process_daily_logs(self, date: str) -> ProcessingResult:
        """Aggregate one day of behavior logs and persist the results.

        A day without events writes nothing. Detail rows are appended on
        every run (re-running a date duplicates them) while the daily stats
        row is overwritten.

        Raises:
            SQLAlchemyError: If the daily stats row cannot be written
        """
        logger.info(f"Processing behavior logs for {date}")
        events, skipped = self.load_events(date)
        result = ProcessingResult(date=date, events_read=len(events) + skipped, skipped_events=skipped)

        if not events:
            logger.info(f"No behavior logs for {date}")
            return result

        statistics = compute_statistics(events, date, self.top_n)
        written, failed = self.save_detailed_analytics(events, date)
        self.save_daily_statistics(statistics)

        result.records_written = written
        result.failed_batches = failed
        result.statistics = statistics
        logger.info(
            f"Processed {len(events)} behavior events for {date} "
            f"({written} rows written, {failed} failed batches)"
        )
        return result

    def _to_record(self, event: BehaviorEvent, date: str) -> AnalyticsRecord:
        created_at = None
        if isinstance(event.timestamp, str) and event.timestamp:
            try:
                moment = datetime.fromisoformat(event.timestamp.replace("Z", "+00:00"))
                if moment.tzinfo is None:
                    moment = moment.replace(tzinfo=self.store.tz)
                created_at = utc_naive(moment)
            except ValueError:
                pass
        if created_at is None:
            created_at = utc_naive(self._clock())

        fields = {name: _clip(getattr(event, name), limit) for name, limit in _COLUMN_LIMITS.items()}
        return AnalyticsRecord(date=date, type=event.type.value, created_at=created_at, **fields)

    def save_detailed_analytics(self, events: List[BehaviorEvent], date: str) -> Tuple[int, int]:
        """Insert one analytics row per event, one transaction per batch.

        A failing batch is rolled back and logged; the remaining batches are
        still attempted.

        Returns:
            (rows written, batches that failed)
        """
        written = 0
        failed = 0
        for start in range(0, len(events), self.batch_size):
            batch = events[start:start + self.batch_size]
            try:
                with self.database.session_scope() as session:
                    session.add_all([self._to_record(event, date) for event in batch])
                written += len(batch)
            except Exception:
                failed += 1
                logger.error(
                    f"Failed to save analytics batch {start}-{start + len(batch)} for {date}",
                    exc_info=True
                )
        return written, failed

    def save_daily_statistics(self, statistics: DailyStatistics) -> Dict[str, Any]:
        """Insert or overwrite the daily stats row of a date."""
        now = utc_naive(self._clock())
        counters = {
            "total_views": statistics.total_views,
            "unique_visitors": statistics.unique_visitors,
            "article_views": statistics.article_views,
            "moment_views": statistics.moment_views,
            "work_views": statistics.work_views,
            "new_comments": statistics.new_comments,
            "new_likes": statistics.new_likes,
        }

        with self.database.session_scope() as session:
            row = session.query(DailyStatsRow).filter(DailyStatsRow.date == statistics.date).one_or_none()
            if row is None:
                row = DailyStatsRow(date=statistics.date, created_at=now, updated_at=now, **counters)
                session.add(row)
            else:
                for name, value in counters.items():
                    setattr(row, name, value)
                row.updated_at = now
            session.flush()
            return row.to_dict()

    def cleanup_old_analytics(self, retention_days: int = 90) -> Dict[str, int]:
        """Delete detail and summary rows created before ``now - retention_days``.

        This window is independent of the log file retention.

        Returns:
            Number of deleted rows per table
        """
        cutoff = utc_naive(self._clock()) - timedelta(days=retention_days)
        with self.database.session_scope() as session:
            records = session.query(AnalyticsRecord).filter(
                AnalyticsRecord.created_at < cutoff
            ).delete(synchronize_session=False)
            daily = session.query(DailyStatsRow).filter(
                DailyStatsRow.created_at < cutoff
            ).delete(synchronize_session=False)

        logger.info(f"Cleaned up analytics older than {retention_days} days: {records} records, {daily} daily rows")
        return {"analytics": records, "daily_stats": daily}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_statistics(self, start_date: str, end_date: str) -> List[Dict[str, Any]]:
        """Daily stats rows between two dates (inclusive), oldest first."""
        with self.database.session_scope() as session:
            rows = (
                session.query(DailyStatsRow)
                .filter(DailyStatsRow.date >= start_date, DailyStatsRow.date <= end_date)
                .order_by(DailyStatsRow.date.asc())
                .all()
            )
            return [row.to_dict() for row in rows]

    def get_daily_stats(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 30
    ) -> List[Dict[str, Any]]:
        """Most recent daily stats rows, newest first."""
        with self.database.session_scope() as session:
            query = session.query(DailyStatsRow)
            if start_date:
                query = query.filter(DailyStatsRow.date >= start_date)
            if end_date:
                query = query.filter(DailyStatsRow.date <= end_date)
            rows = query.order_by(DailyStatsRow.date.desc()).limit(limit).all()
            return [row.to_dict() for row in rows]

    def get_stats_summary(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> StatsSummary:
        """Sum the daily stats rows of a range."""
        with self.database.session_scope() as session:
            query = session.query(
                func.coalesce(func.sum(DailyStatsRow.total_views), 0),
                func.coalesce(func.sum(DailyStatsRow.unique_visitors), 0),
                func.coalesce(func.sum(DailyStatsRow.article_views), 0),
                func.coalesce(func.sum(DailyStatsRow.moment_views), 0),
                func.coalesce(func.sum(DailyStatsRow.work_views), 0),
                func.coalesce(func.sum(DailyStatsRow.new_comments), 0),
                func.coalesce(func.sum(DailyStatsRow.new_likes), 0),
                func.coalesce(func.avg(DailyStatsRow.total_views), 0),
                func.count(DailyStatsRow.id),
            )
            if start_date:
                query = query.filter(DailyStatsRow.date >= start_date)
            if end_date:
                query = query.filter(DailyStatsRow.date <= end_date)
            row = query.one()

        return StatsSummary(
            total_views=int(row[0]),
            unique_visitors=int(row[1]),
            article_views=int(row[2]),
            moment_views=int(row[3]),
            work_views=int(row[4]),
            new_comments=int(row[5]),
            new_likes=int(row[6]),
            avg_daily_views=round(float(row[7]), 2),
            days=int(row[8]),
        )

    def get_top_content(self, date: str, event_type: BehaviorType, limit: int = 10) -> List[TopContent]:
        """Most viewed targets of one type on one date."""
        return self.get_top_targets(event_type, start_date=date, end_date=date, limit=limit)

    def get_top_targets(
        self,
        event_type: BehaviorType,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 10
    ) -> List[TopContent]:
        """Most viewed targets of one type over a date range."""
        views = func.count(AnalyticsRecord.id).label("views")
        with self.database.session_scope() as session:
            query = (
                session.query(AnalyticsRecord.target_id, func.max(AnalyticsRecord.target_title), views)
                .filter(AnalyticsRecord.type == event_type.value)
                .filter(AnalyticsRecord.target_id.isnot(None))
            )
            if start_date:
                query = query.filter(AnalyticsRecord.date >= start_date)
            if end_date:
                query = query.filter(AnalyticsRecord.date <= end_date)
            rows = (
                query.group_by(AnalyticsRecord.target_id)
                .order_by(views.desc(), AnalyticsRecord.target_id.asc())
                .limit(limit)
                .all()
            )

        return [
            TopContent(target_id=target_id, target_title=title, views=int(count))
            for target_id, title, count in rows
        ]

    def generate_custom_report(self, options: ReportRequest) -> Dict[str, Any]:
        """Summary plus daily rows of a period."""
        summary = self.get_stats_summary(options.start_date, options.end_date)
        daily_stats = self.get_statistics(options.start_date, options.end_date)
        return {
            "summary": summary.to_dict(),
            "dailyStats": daily_stats,
            "period": {"startDate": options.start_date, "endDate": options.end_date},
            "metrics": options.metrics,
            "groupBy": options.group_by,
            "filters": options.filters,
        }
