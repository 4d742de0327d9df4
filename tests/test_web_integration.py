"""
Web integration tests: the composed application, the tracking hook, event
ingestion, the admin analytics API and request logging.
"""

import json
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from flask import Flask

from app.event_tracking.event_types import LogKind
from app.event_tracking.log_store import EventLogStore
from app.main import create_app
from app.request_logging import register_request_logging
from config_manager import ConfigManager

SHANGHAI = ZoneInfo("Asia/Shanghai")
DAY = "2025-03-10"


class FixedClock:
    def __init__(self, moment: datetime):
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 10, 15, 0, tzinfo=SHANGHAI))


@pytest.fixture
def app(tmp_path, clock, monkeypatch):
    for name in ["DATABASE_URL", "LOG_DIR", "DATA_DIR", "ADMIN_USER_IDS", "ANALYTICS_TIMEZONE"]:
        monkeypatch.delenv(name, raising=False)

    config_file = tmp_path / "analytics_config.json"
    config_file.write_text(json.dumps({
        "app": {"admin_user_ids": ["admin"]},
        "paths": {"log_dir": str(tmp_path / "logs"), "data_dir": str(tmp_path / "data")},
        "database": {"url": f"sqlite:///{tmp_path / 'data' / 'analytics.db'}"},
    }))

    app = create_app(ConfigManager(str(config_file)), clock=clock, configure_logging=False)
    app.config["TESTING"] = True

    # Content pages of the host site
    @app.route("/articles")
    def articles():
        return "articles"

    @app.route("/api/articles/<article_id>")
    def article(article_id):
        return {"id": article_id}

    @app.route("/boom")
    def boom():
        raise RuntimeError("exploded")

    yield app
    app.extensions["analytics"]["scheduler"].stop_all_tasks()
    app.extensions["analytics"]["database"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    client = app.test_client()
    client.set_cookie("uid", "admin")
    return client


@pytest.fixture
def store(app):
    return app.extensions["analytics"]["store"]


def behavior_records(store, day=DAY):
    return store.read(LogKind.BEHAVIOR, day)


class TestApplication:
    """Test the composed application."""

    def test_health(self, client):
        response = client.get("/actuator/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "UP", "service": "content-analytics"}

    def test_services_registered(self, app):
        services = app.extensions["analytics"]
        for name in ["config", "database", "store", "tracker", "analytics_service", "scheduler"]:
            assert name in services
        assert all(not s.running for s in services["scheduler"].get_task_status())

    def test_health_not_tracked(self, client, store):
        client.get("/actuator/health")
        assert behavior_records(store) == []


class TestTrackingHook:
    """Test request tracking through the composed application."""

    def test_page_and_article_views(self, client, store):
        client.set_cookie("session_id", "sess_web")
        client.get("/articles")
        client.get("/api/articles/a1")
        client.get("/api/articles")

        records = behavior_records(store)
        assert [r["type"] for r in records] == ["page_view", "article_view"]
        assert records[1]["targetId"] == "a1"
        assert all(r["sessionId"] == "sess_web" for r in records)

    def test_admin_api_not_tracked(self, admin, store):
        admin.get("/stats/api/daily")
        assert behavior_records(store) == []


class TestEventIngestion:
    """Test the frontend event endpoint."""

    def test_valid_event(self, client, store):
        response = client.post("/event", json={
            "type": "article_view", "targetId": "a1", "targetTitle": "Hello", "duration": 30
        })

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}
        record = behavior_records(store)[0]
        assert record["type"] == "article_view"
        assert record["targetTitle"] == "Hello"
        assert record["duration"] == 30

    def test_invalid_event_dropped(self, client, store):
        response = client.post("/event", json={"type": "nonsense"})
        assert response.status_code == 200
        assert behavior_records(store) == []

    def test_raw_body(self, client, store):
        response = client.post("/event", data='{"type": "page_view"}', content_type="text/plain")
        assert response.status_code == 200
        assert len(behavior_records(store)) == 1

    def test_non_object_payload(self, client):
        response = client.post("/event", json=[1, 2, 3])
        assert response.status_code == 400
        assert response.get_json() == {"error": "invalid-payload"}


class TestAdminApi:
    """Test the admin analytics endpoints."""

    def seed(self, client):
        client.set_cookie("session_id", "sess_a")
        client.post("/event", json={"type": "article_view", "targetId": "a1", "targetTitle": "Hello"})
        client.post("/event", json={"type": "article_view", "targetId": "a1", "targetTitle": "Hello"})
        client.set_cookie("session_id", "sess_b")
        client.post("/event", json={"type": "page_view"})
        client.post("/event", json={"type": "like_action", "targetId": "a1"})

    def test_requires_login(self, client):
        assert client.get("/stats/api/daily").status_code == 401

    def test_requires_admin(self, client):
        client.set_cookie("uid", "reader")
        assert client.get("/stats/api/daily").status_code == 403

    def test_process_and_query(self, admin, client):
        self.seed(client)

        response = admin.post("/stats/api/process", json={"date": DAY})
        assert response.status_code == 200
        result = response.get_json()
        assert result["eventsRead"] == 4
        assert result["recordsWritten"] == 4
        assert result["statistics"]["uniqueVisitors"] == 2
        assert result["statistics"]["totalViews"] == 3
        assert result["statistics"]["newLikes"] == 1

        rows = admin.get(f"/stats/api/statistics?start={DAY}&end={DAY}").get_json()
        assert len(rows) == 1
        assert rows[0]["articleViews"] == 2

        assert admin.get("/stats/api/daily").get_json()[0]["date"] == DAY

        summary = admin.get(f"/stats/api/summary?start={DAY}&end={DAY}").get_json()
        assert summary["totalViews"] == 3
        assert summary["days"] == 1

        top = admin.get(f"/stats/api/top?date={DAY}&type=article_view").get_json()
        assert top == [{"targetId": "a1", "targetTitle": "Hello", "views": 2}]

        targets = admin.get(f"/stats/api/top-targets?type=article_view&start={DAY}&end={DAY}").get_json()
        assert targets[0]["views"] == 2

    def test_process_empty_day(self, admin):
        response = admin.post("/stats/api/process", json={"date": "2025-01-01"})
        assert response.status_code == 200
        assert response.get_json()["statistics"] is None
        assert admin.get("/stats/api/daily").get_json() == []

    def test_process_yesterday(self, admin, client, clock):
        self.seed(client)
        clock.moment = datetime(2025, 3, 11, 9, 0, tzinfo=SHANGHAI)

        response = admin.post("/stats/api/process/yesterday")

        assert response.status_code == 200
        assert response.get_json()["date"] == DAY
        assert response.get_json()["eventsRead"] == 4

    def test_bad_input(self, admin):
        assert admin.post("/stats/api/process", json={}).status_code == 400
        assert admin.post("/stats/api/process", json={"date": "2025-02-30"}).status_code == 400
        assert admin.get("/stats/api/statistics?start=2025-03-01").status_code == 400
        assert admin.get("/stats/api/top?type=not_a_type").status_code == 400
        assert admin.get("/stats/api/summary?start=garbage").status_code == 400

    def test_process_already_running(self, admin, app):
        scheduler = app.extensions["analytics"]["scheduler"]
        scheduler._acquire(f"analytics:{DAY}")
        try:
            response = admin.post("/stats/api/process", json={"date": DAY})
        finally:
            scheduler._release(f"analytics:{DAY}")
        assert response.status_code == 409

    def test_live_statistics(self, admin, client):
        self.seed(client)

        live = admin.get("/stats/api/live").get_json()

        assert live["date"] == DAY
        assert live["statistics"]["totalViews"] == 3
        assert admin.get("/stats/api/daily").get_json() == []

    def test_report(self, admin, client):
        self.seed(client)
        admin.post("/stats/api/process", json={"date": DAY})

        response = admin.post("/stats/api/report", json={"startDate": DAY, "endDate": DAY, "metrics": ["totalViews"]})
        assert response.status_code == 200
        report = response.get_json()
        assert report["summary"]["totalViews"] == 3
        assert report["period"] == {"startDate": DAY, "endDate": DAY}

        assert admin.post("/stats/api/report", json={"startDate": DAY}).status_code == 400
        assert admin.post("/stats/api/report", json={"startDate": "x", "endDate": DAY}).status_code == 400

    def test_log_dates(self, admin, client):
        self.seed(client)
        response = admin.get("/stats/api/log-dates").get_json()
        assert response == {"kind": "behavior", "dates": [DAY]}

    def test_tasks(self, admin):
        tasks = admin.get("/stats/api/tasks").get_json()
        assert [t["name"] for t in tasks] == ["daily-analytics", "log-cleanup", "analytics-cleanup"]
        assert all(t["running"] is False for t in tasks)

        assert admin.post("/stats/api/tasks/unknown/restart").status_code == 404
        response = admin.post("/stats/api/tasks/log-cleanup/restart")
        assert response.status_code == 200

        tasks = {t["name"]: t for t in admin.get("/stats/api/tasks").get_json()}
        assert tasks["log-cleanup"]["running"] is True
        assert tasks["log-cleanup"]["schedule"] == "weekly on Sunday at 02:00 (Asia/Shanghai)"

    def test_cleanup_endpoints(self, admin, store):
        (store.log_dir / "behavior-2024-01-01.log").write_text("")

        logs = admin.post("/stats/api/cleanup/logs").get_json()
        assert logs == {"retentionDays": 30, "deleted": ["behavior-2024-01-01.log"]}

        analytics = admin.post("/stats/api/cleanup/analytics", json={"retentionDays": 10}).get_json()
        assert analytics == {"retentionDays": 10, "deleted": {"analytics": 0, "daily_stats": 0}}

    def test_cleanup_retention_validated(self, admin):
        logs = admin.post("/stats/api/cleanup/logs", json={"retentionDays": None})
        assert logs.status_code == 200
        assert logs.get_json()["retentionDays"] == 30
        analytics = admin.post("/stats/api/cleanup/analytics", json={"retentionDays": None})
        assert analytics.get_json()["retentionDays"] == 90

        for endpoint in ("/stats/api/cleanup/logs", "/stats/api/cleanup/analytics"):
            for value in ("abc", -1, [7]):
                response = admin.post(endpoint, json={"retentionDays": value})
                assert response.status_code == 400
                assert response.get_json()["error"] == "invalid-cleanup-request"


class TestRequestLogging:
    """Test request logging and unhandled error reporting."""

    def test_requests_logged(self, client, caplog):
        caplog.set_level(logging.INFO, logger="app.request_logging")

        client.get("/articles?page=2", headers={"User-Agent": "test-agent", "X-Forwarded-For": "8.8.8.8"})
        client.get("/no-such-page")

        messages = [r.getMessage() for r in caplog.records]
        assert "Incoming request: GET /articles?page=2 - IP: 8.8.8.8 - UA: test-agent" in messages
        assert any(m.startswith("GET /articles?page=2 200 - ") for m in messages)
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert any(m.startswith("Error response: GET /no-such-page - 404") for m in warnings)

    def test_slow_request_logged(self, tmp_path, caplog):
        caplog.set_level(logging.INFO, logger="app.request_logging")
        app = Flask(__name__)

        @app.route("/works")
        def works():
            return "works"

        register_request_logging(app, EventLogStore(tmp_path / "logs", SHANGHAI), slow_request_ms=-1)
        app.test_client().get("/works")

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].startswith("Slow request: GET /works took ")
        assert warnings[0].endswith("(threshold -1ms)")

    def test_unhandled_error(self, client, store):
        client.set_cookie("session_id", "sess_err")

        response = client.get("/boom?x=1")

        assert response.status_code == 500
        body = response.get_json()
        assert body["statusCode"] == 500
        assert body["path"] == "/boom?x=1"
        assert body["method"] == "GET"
        assert body["message"] == "Internal server error"

        errors = store.read(LogKind.ERROR, DAY)
        assert len(errors) == 1
        assert errors[0]["level"] == "error"
        assert errors[0]["url"] == "/boom?x=1"
        assert errors[0]["method"] == "GET"
        assert errors[0]["statusCode"] == 500
        assert errors[0]["sessionId"] == "sess_err"
        assert "RuntimeError: exploded" in errors[0]["stack"]
        assert behavior_records(store) == []

    def test_http_errors_keep_their_status(self, client, store):
        assert client.get("/no-such-page").status_code == 404
        assert client.post("/articles").status_code == 405
        assert store.read(LogKind.ERROR, DAY) == []


class TestDatabaseLocation:
    def test_relative_sqlite_url_lives_in_data_dir(self, tmp_path, monkeypatch):
        for name in ["DATABASE_URL", "LOG_DIR", "DATA_DIR"]:
            monkeypatch.delenv(name, raising=False)
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)

        config_file = tmp_path / "analytics_config.json"
        config_file.write_text(json.dumps({
            "paths": {"log_dir": str(tmp_path / "logs"), "data_dir": str(tmp_path / "data")},
            "database": {"url": "sqlite:///analytics.db"},
        }))

        app = create_app(ConfigManager(str(config_file)), configure_logging=False)
        app.extensions["analytics"]["database"].dispose()

        assert (tmp_path / "data" / "analytics.db").exists()
        assert not (elsewhere / "analytics.db").exists()
