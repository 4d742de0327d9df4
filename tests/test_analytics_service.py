"""
Tests for the analytics service: processing, persistence, retention and queries.
"""

import json
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from app.analytics.models import DailyStatistics, ReportRequest
from app.analytics.services import AnalyticsService
from app.analytics.tables import AnalyticsRecord, DailyStatsRow
from app.database import Database
from app.event_tracking.event_types import BehaviorType, LogKind
from app.event_tracking.log_store import EventLogStore
from app.event_tracking.models import BehaviorEvent

SHANGHAI = ZoneInfo("Asia/Shanghai")
DAY = "2024-01-01"


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


def behavior(event_type: BehaviorType, session_id: str = "s1", **kwargs) -> BehaviorEvent:
    return BehaviorEvent(type=event_type, session_id=session_id, ip_address="1.1.1.1", user_agent="ua", **kwargs)


@pytest.fixture
def store_clock():
    return FixedClock(datetime(2024, 1, 1, 10, 0, tzinfo=SHANGHAI))


@pytest.fixture
def store(tmp_path, store_clock):
    return EventLogStore(tmp_path / "logs", SHANGHAI, clock=store_clock)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'data' / 'analytics.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def service_clock():
    return FixedClock(datetime(2024, 1, 2, 0, 5, tzinfo=timezone.utc))


@pytest.fixture
def service(database, store, service_clock):
    return AnalyticsService(database, store, clock=service_clock)


def write_scenario(store):
    store.log_behavior(behavior(BehaviorType.PAGE_VIEW, "a", referer="/home"))
    store.log_behavior(behavior(BehaviorType.PAGE_VIEW, "a", referer="/home"))
    store.log_behavior(behavior(BehaviorType.ARTICLE_VIEW, "b", target_id="art1", target_title="Hello"))


def count_rows(database, table, **filters):
    with database.session_scope() as session:
        return session.query(table).filter_by(**filters).count()


class TestProcessDailyLogs:
    """Test processing one day of logs."""

    def test_end_to_end(self, service, store, database):
        write_scenario(store)

        result = service.process_daily_logs(DAY)

        assert result.has_data
        assert result.events_read == 3
        assert result.records_written == 3
        assert result.failed_batches == 0
        assert result.statistics.unique_visitors == 2
        assert result.statistics.total_views == 3

        rows = service.get_statistics(DAY, DAY)
        assert len(rows) == 1
        assert rows[0]["totalViews"] == 3
        assert rows[0]["uniqueVisitors"] == 2
        assert rows[0]["articleViews"] == 1
        assert count_rows(database, AnalyticsRecord, date=DAY) == 3

    def test_record_fields(self, service, store, database):
        store.log_behavior(behavior(
            BehaviorType.ARTICLE_VIEW, target_id="art1", target_title="T" * 300,
            referer="/home", device="mobile", browser="Safari 17.0", os="iOS 17.0",
        ))
        service.process_daily_logs(DAY)

        with database.session_scope() as session:
            record = session.query(AnalyticsRecord).one()
            assert record.type == "article_view"
            assert record.target_id == "art1"
            assert len(record.target_title) == 255
            assert record.device == "mobile"
            # 10:00 in Shanghai is 02:00 UTC
            assert record.created_at == datetime(2024, 1, 1, 2, 0)

    def test_empty_day_writes_nothing(self, service, database):
        result = service.process_daily_logs(DAY)

        assert not result.has_data
        assert result.events_read == 0
        assert count_rows(database, AnalyticsRecord) == 0
        assert count_rows(database, DailyStatsRow) == 0

    def test_empty_day_keeps_existing_summary(self, service, store, database):
        write_scenario(store)
        service.process_daily_logs(DAY)
        store.log_file(LogKind.BEHAVIOR, DAY).unlink()

        service.process_daily_logs(DAY)

        assert service.get_statistics(DAY, DAY)[0]["totalViews"] == 3
        assert count_rows(database, AnalyticsRecord) == 3

    def test_rerun_duplicates_records_but_not_summary(self, service, store, database, service_clock):
        write_scenario(store)
        service.process_daily_logs(DAY)
        first_row = service.get_statistics(DAY, DAY)[0]

        store.log_behavior(behavior(BehaviorType.MOMENT_VIEW, "c", target_id="m1"))
        service_clock.moment = datetime(2024, 1, 2, 1, 0, tzinfo=timezone.utc)
        service.process_daily_logs(DAY)

        assert count_rows(database, AnalyticsRecord, date=DAY) == 3 + 4
        assert count_rows(database, DailyStatsRow) == 1
        row = service.get_statistics(DAY, DAY)[0]
        assert row["totalViews"] == 4
        assert row["uniqueVisitors"] == 3
        assert row["momentViews"] == 1
        assert row["createdAt"] == first_row["createdAt"]
        assert row["updatedAt"] != first_row["updatedAt"]

    def test_malformed_trailing_line(self, service, store):
        write_scenario(store)
        with open(store.log_file(LogKind.BEHAVIOR, DAY), "a", encoding="utf-8") as f:
            f.write('{"type": "page_view", "sessionId": "z", "refe')

        result = service.process_daily_logs(DAY)

        assert result.events_read == 3
        assert result.statistics.unique_visitors == 2

    def test_unknown_event_type_skipped(self, service, store):
        write_scenario(store)
        store.append(LogKind.BEHAVIOR, {"type": "page_scroll", "sessionId": "q"})

        result = service.process_daily_logs(DAY)

        assert result.events_read == 4
        assert result.skipped_events == 1
        assert result.records_written == 3

    def test_wrongly_typed_fields(self, service, store, database):
        write_scenario(store)
        store.append(LogKind.BEHAVIOR, {"type": "article_view", "sessionId": "z", "targetId": 7, "targetTitle": "Seven"})
        store.append(LogKind.BEHAVIOR, {"type": "page_view", "sessionId": ["x"]})
        store.append(LogKind.BEHAVIOR, {"type": "page_view", "sessionId": "w", "device": {"kind": "phone"}})
        store.append(LogKind.BEHAVIOR, {"type": "page_view", "sessionId": "v", "extra": "text"})
        store.append(LogKind.BEHAVIOR, {"type": "page_view", "sessionId": "y", "timestamp": 1704067200})

        result = service.process_daily_logs(DAY)

        assert result.events_read == 8
        assert result.skipped_events == 3
        assert result.records_written == 5
        assert result.failed_batches == 0
        assert result.statistics.unique_visitors == 4
        assert {a.id for a in result.statistics.top_articles} == {"art1", "7"}

        with database.session_scope() as session:
            record = session.query(AnalyticsRecord).filter_by(target_id="7").one()
            assert record.target_title == "Seven"

    def test_batches(self, database, store, service_clock):
        service = AnalyticsService(database, store, batch_size=2, clock=service_clock)
        for i in range(5):
            store.log_behavior(behavior(BehaviorType.PAGE_VIEW, f"s{i}"))

        result = service.process_daily_logs(DAY)

        assert result.records_written == 5
        assert result.failed_batches == 0
        assert count_rows(database, AnalyticsRecord) == 5

    def test_failed_batch_does_not_stop_others(self, database, store, service_clock):
        class FlakyService(AnalyticsService):
            def _to_record(self, event, date):
                if event.target_id == "bad":
                    raise RuntimeError("cannot convert")
                return super()._to_record(event, date)

        service = FlakyService(database, store, batch_size=2, clock=service_clock)
        for target in ["1", "2", "bad", "4", "5"]:
            store.log_behavior(behavior(BehaviorType.ARTICLE_VIEW, target_id=target))

        result = service.process_daily_logs(DAY)

        assert result.records_written == 3
        assert result.failed_batches == 1
        assert count_rows(database, AnalyticsRecord) == 3
        assert service.get_statistics(DAY, DAY)[0]["articleViews"] == 5

    def test_live_statistics_do_not_persist(self, service, store, database):
        write_scenario(store)

        statistics = service.compute_daily_statistics(DAY)

        assert statistics.total_views == 3
        assert count_rows(database, DailyStatsRow) == 0
        assert service.compute_daily_statistics("2023-12-31") is None


class TestCleanupOldAnalytics:
    """Test retention of aggregated rows."""

    def test_retention_boundary(self, database, store):
        now = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)
        service = AnalyticsService(database, store, clock=FixedClock(now))
        # cutoff = 2024-03-03 00:00 UTC
        with database.session_scope() as session:
            for created in [datetime(2024, 3, 2, 23, 59), datetime(2024, 3, 3, 0, 0), datetime(2024, 5, 1)]:
                session.add(AnalyticsRecord(date=created.date().isoformat(), type="page_view", created_at=created))
                session.add(DailyStatsRow(date=created.date().isoformat(), created_at=created, updated_at=created))

        deleted = service.cleanup_old_analytics(90)

        assert deleted == {"analytics": 1, "daily_stats": 1}
        assert count_rows(database, AnalyticsRecord) == 2
        assert count_rows(database, DailyStatsRow) == 2


class TestQueries:
    """Test the query API over persisted data."""

    @pytest.fixture
    def seeded(self, service):
        for day, views in [("2024-01-01", 10), ("2024-01-02", 20), ("2024-01-03", 30)]:
            service.save_daily_statistics(DailyStatistics(
                date=day, total_views=views, unique_visitors=views // 10, article_views=views // 2
            ))
        return service

    def test_get_statistics_ascending(self, seeded):
        rows = seeded.get_statistics("2024-01-02", "2024-01-03")
        assert [r["date"] for r in rows] == ["2024-01-02", "2024-01-03"]

    def test_get_daily_stats_newest_first(self, seeded):
        rows = seeded.get_daily_stats(limit=2)
        assert [r["date"] for r in rows] == ["2024-01-03", "2024-01-02"]

    def test_summary(self, seeded):
        summary = seeded.get_stats_summary("2024-01-01", "2024-01-03")
        assert summary.total_views == 60
        assert summary.unique_visitors == 6
        assert summary.article_views == 30
        assert summary.avg_daily_views == 20.0
        assert summary.days == 3

    def test_summary_of_empty_range(self, seeded):
        summary = seeded.get_stats_summary("2030-01-01", "2030-01-31")
        assert summary.total_views == 0
        assert summary.days == 0
        assert summary.avg_daily_views == 0.0

    def test_top_content(self, service, store):
        for target, title, times in [("a", "Alpha", 1), ("b", "Beta", 3), ("c", "Gamma", 2)]:
            for _ in range(times):
                store.log_behavior(behavior(BehaviorType.ARTICLE_VIEW, target_id=target, target_title=title))
        store.log_behavior(behavior(BehaviorType.WORK_VIEW, target_id="w1", target_title="Work"))
        service.process_daily_logs(DAY)

        top = service.get_top_content(DAY, BehaviorType.ARTICLE_VIEW, limit=2)
        assert [(t.target_id, t.target_title, t.views) for t in top] == [("b", "Beta", 3), ("c", "Gamma", 2)]

        works = service.get_top_targets(BehaviorType.WORK_VIEW, DAY, DAY)
        assert [t.to_dict() for t in works] == [{"targetId": "w1", "targetTitle": "Work", "views": 1}]

        assert service.get_top_content("2023-12-31", BehaviorType.ARTICLE_VIEW) == []

    def test_custom_report(self, seeded):
        report = seeded.generate_custom_report(ReportRequest.model_validate({
            "startDate": "2024-01-01",
            "endDate": "2024-01-02",
            "metrics": ["totalViews"],
        }))

        assert report["summary"]["totalViews"] == 30
        assert [r["date"] for r in report["dailyStats"]] == ["2024-01-01", "2024-01-02"]
        assert report["period"] == {"startDate": "2024-01-01", "endDate": "2024-01-02"}
        assert report["groupBy"] == "day"
        json.dumps(report)
